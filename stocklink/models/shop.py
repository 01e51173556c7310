# stocklink/models/shop.py
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text

from ..database import Base
from .stock_record import utc_now


class Shop(Base):
    """A connected Shopify shop and the Etsy OAuth state linked to it."""
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True)
    shop_domain = Column(String(255), nullable=False, unique=True, index=True)
    shopify_access_token = Column(Text, nullable=True)

    etsy_onboarded = Column(Boolean, nullable=False, default=False)
    etsy_access_token = Column(Text, nullable=True)
    etsy_refresh_token = Column(Text, nullable=True)
    etsy_token_expires = Column(DateTime, nullable=True)
    etsy_code_reference = Column(Text, nullable=True)  # authorization code from the consent redirect
    etsy_code_verifier = Column(Text, nullable=True)   # PKCE verifier matching that code

    etsy_shop_id = Column(BigInteger, nullable=True)
    etsy_shop_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
