from datetime import datetime

import pytest
from click.testing import CliRunner
from unittest.mock import AsyncMock

from stocklink.cli.run_sync import cli
from stocklink.schemas.stock import SyncRunResult


def sync_result(success, failed_stage=None):
    return SyncRunResult(
        run_id="abc",
        shop_domain="test-shop.myshopify.com",
        started_at=datetime(2026, 1, 1),
        success=success,
        stages={"reconcile": {"etsy_deltas": 1}},
        applied=[{"platform": "ETSY", "attempted": 1, "succeeded": int(success), "failed": int(not success)}],
        failed_stage=failed_stage,
        error="boom" if failed_stage else None,
    )


@pytest.fixture
def patched(mocker, settings):
    mocker.patch("stocklink.cli.run_sync.get_settings", return_value=settings)
    mocker.patch("stocklink.cli.run_sync.configure_logging")
    return mocker.patch("stocklink.cli.run_sync.run_sync_once", new=AsyncMock())


def test_run_success_exits_zero(patched):
    patched.return_value = sync_result(True)

    result = CliRunner().invoke(cli, ["run", "--shop", "test-shop.myshopify.com"])

    assert result.exit_code == 0
    assert "completed" in result.output
    assert patched.await_args.args[0] == "test-shop.myshopify.com"


def test_failed_stage_exits_non_zero(patched):
    patched.return_value = sync_result(False, failed_stage="shopify_inventory_levels")

    result = CliRunner().invoke(cli, ["run"])

    assert result.exit_code == 1


def test_all_writes_failed_exits_non_zero(patched):
    patched.return_value = sync_result(False)

    result = CliRunner().invoke(cli, ["run"])

    assert result.exit_code == 1
