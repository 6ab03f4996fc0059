"""
Tests for the bridge-e2e command line.
"""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from bridge_e2e import __version__
from bridge_e2e.cli.e2e import cli, error_message, identity_is_operator, l2_funding_chooser, select_funder
from bridge_e2e.exceptions import (
    BridgingError,
    ConfigurationError,
    CorruptStateError,
    DeploymentError,
    E2EException,
    NetworkError,
    PollTimeoutError,
    WalletFundingError,
)
from bridge_e2e.indexer import WithdrawalRecord
from bridge_e2e.pipeline import Identity, PipelineState

from conftest import IDENTITY_ADDRESS, IDENTITY_KEY, withdrawal_record

OTHER_KEY = "0x" + "44" * 32


@pytest.fixture
def runner():
    return CliRunner()


class TestErrorMessages:
    @pytest.mark.parametrize("error, prefix", [
        (WalletFundingError("x"), "E2E Test failed due to wallet funding issues"),
        (BridgingError("x"), "E2E Test failed due to bridging issues"),
        (DeploymentError("x"), "E2E Test failed due to contract deployment issues"),
        (ConfigurationError("x"), "E2E Test failed due to configuration issues"),
        (CorruptStateError("x"), "E2E Test failed due to a corrupt checkpoint"),
        (NetworkError("x"), "E2E Test failed due to network issues"),
        (PollTimeoutError("x"), "E2E Test failed due to network issues"),
    ])
    def test_prefix_by_domain(self, error, prefix):
        assert error_message(error) == f"{prefix}: x"

    def test_generic(self):
        assert error_message(E2EException("odd")) == "E2E Test failed: odd"


class TestSelectFunder:
    def test_explicit_key(self, config):
        funder = select_funder(config, OTHER_KEY, manual_fund=False, skip_wallet_generation=False)
        assert funder.address != select_funder(config, None, False, False).address

    def test_deployer_fallback(self, config, funder):
        assert select_funder(config, None, manual_fund=False, skip_wallet_generation=False).address == funder.address

    def test_manual_without_key(self, config):
        assert select_funder(config, None, manual_fund=True, skip_wallet_generation=False) is None

    def test_skip_generation_has_no_funder(self, config):
        assert select_funder(config, OTHER_KEY, manual_fund=False, skip_wallet_generation=True) is None


class TestIdentityIsOperator:
    def test_skip_generation(self):
        assert identity_is_operator(PipelineState(), skip_wallet_generation=True)

    def test_fresh_run(self):
        assert not identity_is_operator(PipelineState(), skip_wallet_generation=False)

    def test_resumed_operator_identity(self):
        state = PipelineState(identity=Identity(address=IDENTITY_ADDRESS, generated=False))
        assert identity_is_operator(state, skip_wallet_generation=False)

    def test_resumed_generated_identity(self):
        state = PipelineState(identity=Identity(address=IDENTITY_ADDRESS, private_key=IDENTITY_KEY))
        assert not identity_is_operator(state, skip_wallet_generation=False)


class TestL2FundingChooser:
    def _ctx(self, covered):
        ctx = MagicMock()
        ctx.funder.can_cover.return_value = covered
        return ctx

    def test_preselected(self):
        assert l2_funding_chooser("bridge")(self._ctx(False)) == "bridge"
        assert l2_funding_chooser("funder")(self._ctx(True)) == "funder"

    def test_preselected_funder_without_balance(self):
        with pytest.raises(WalletFundingError):
            l2_funding_chooser("funder")(self._ctx(False))

    def test_prompt_hides_funder_without_balance(self):
        with patch("bridge_e2e.cli.e2e.click.prompt", return_value="manual") as prompt:
            assert l2_funding_chooser(None)(self._ctx(False)) == "manual"
        choice = prompt.call_args.kwargs["type"]
        assert list(choice.choices) == ["bridge", "manual"]

    def test_prompt_offers_funder(self):
        with patch("bridge_e2e.cli.e2e.click.prompt", return_value="funder") as prompt:
            l2_funding_chooser(None)(self._ctx(True))
        assert "funder" in prompt.call_args.kwargs["type"].choices


class TestCommands:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_e2e_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, [
            "e2e",
            "-c", str(tmp_path / "config.toml"),
            "-t", str(tmp_path / "config-contracts.toml"),
            "--state-file", str(tmp_path / "state.json"),
        ])
        assert result.exit_code == 1
        assert "E2E Test failed due to configuration issues" in result.output

    def test_e2e_corrupt_checkpoint(self, runner, tmp_path, config):
        state_file = tmp_path / "state.json"
        state_file.write_text("{")
        with patch("bridge_e2e.cli.e2e.load_config", return_value=config):
            result = runner.invoke(cli, ["e2e", "--resume", "--state-file", str(state_file)])
        assert result.exit_code == 1
        assert "corrupt checkpoint" in result.output

    def test_withdrawals_listing(self, runner, config):
        records = [
            WithdrawalRecord.from_dict(withdrawal_record("0x01", counterpart="0xfeed")),
            WithdrawalRecord.from_dict(withdrawal_record("0x02")),
            WithdrawalRecord.from_dict(withdrawal_record("0x03", claimable=None)),
        ]
        client = MagicMock()
        client.withdrawals.return_value = records
        with patch("bridge_e2e.cli.e2e.load_config", return_value=config), \
                patch("bridge_e2e.cli.e2e.WithdrawalIndexClient", return_value=client):
            result = runner.invoke(cli, ["withdrawals", "0x" + "ab" * 20])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert "claimed in 0xfeed" in lines[0]
        assert "claimable" in lines[1]
        assert "pending" in lines[2]
        client.close.assert_called_once()

    def test_withdrawals_unclaimed(self, runner, config):
        client = MagicMock()
        client.unclaimed_withdrawals.return_value = []
        with patch("bridge_e2e.cli.e2e.load_config", return_value=config), \
                patch("bridge_e2e.cli.e2e.WithdrawalIndexClient", return_value=client):
            result = runner.invoke(cli, ["withdrawals", "0x" + "ab" * 20, "--unclaimed"])
        assert result.exit_code == 0
        assert "No withdrawals found." in result.output
        client.withdrawals.assert_not_called()

    def test_withdrawals_api_error(self, runner, config):
        client = MagicMock()
        client.withdrawals.side_effect = NetworkError("Bridge API error: down")
        with patch("bridge_e2e.cli.e2e.load_config", return_value=config), \
                patch("bridge_e2e.cli.e2e.WithdrawalIndexClient", return_value=client):
            result = runner.invoke(cli, ["withdrawals", "0x" + "ab" * 20])
        assert result.exit_code == 1
        assert "down" in result.output
