"""
End-to-end tests for the analysis pipeline: the four reference scenarios,
the report-level properties, batch analysis and wallet summaries.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from drainguard.config.settings import DetectionConfig, get_settings
from drainguard.core.exceptions import MalformedTransaction, RegistryUnavailable
from drainguard.engine.models import U64_MAX, PatternId, Severity, Verdict
from drainguard.engine.pipeline import analyze_batch, analyze_transaction, summarize_wallet
from drainguard.registry import StaticEntityRegistry

from txbuilders import (
    ATTACKER,
    BONK,
    FRIEND,
    FRIEND_ATA,
    TOKEN_PROGRAM,
    USDC,
    VALID_WALLET,
    VICTIM,
    VICTIM_ATA,
    approve_ix,
    make_raw_tx,
    set_authority_ix,
    token_balance,
    token_transfer_ix,
)


def _usdc_move(loss: int, gain: int, signature: str = "sigMove", instructions=None) -> dict:
    return make_raw_tx(
        instructions,
        keys=[VICTIM, VICTIM_ATA, FRIEND_ATA, TOKEN_PROGRAM],
        pre_token=[token_balance(1, VICTIM, 1000), token_balance(2, FRIEND, 0)],
        post_token=[token_balance(1, VICTIM, 1000 - loss), token_balance(2, FRIEND, gain)],
        signature=signature,
    )


# --- reference scenarios -----------------------------------------------------


def test_scenario_a_lone_authority_hijack(registry):
    """One accountOwner SetAuthority to an unknown address and nothing else."""
    report = analyze_transaction(make_raw_tx([set_authority_ix()]), registry)
    assert report.overall_severity == Severity.CRITICAL
    assert report.overall_confidence == 95
    assert report.attack_type == PatternId.AUTHORITY_HIJACK
    assert report.attacker_addresses == (ATTACKER,)
    assert report.verdict == Verdict.DRAINED
    assert report.recommendations[0].startswith("Migrate all remaining funds")


def test_scenario_b_matched_transfer_is_safe(registry):
    """-1000 USDC on X and +1000 USDC on Y with no approvals: nothing to report."""
    report = analyze_transaction(_usdc_move(1000, 1000), registry)
    assert report.overall_severity == Severity.NONE
    assert report.findings == ()
    assert report.verdict == Verdict.SAFE


def test_scenario_c_unmatched_loss(registry):
    """-1000 USDC with no matching gain anywhere: one MEDIUM/60 UnmatchedLoss."""
    report = analyze_transaction(_usdc_move(1000, 0), registry)
    assert report.overall_severity == Severity.MEDIUM
    assert report.overall_confidence == 60
    assert [f.pattern_id for f in report.findings] == [PatternId.UNMATCHED_LOSS]
    assert report.affected_accounts[0].account == VICTIM
    assert report.affected_accounts[0].loss == 1000


def test_dust_airdrop_does_not_hide_unmatched_loss(registry):
    """USDC drained while one raw unit of another token lands on the victim: still a loss."""
    raw = make_raw_tx(
        keys=[VICTIM, VICTIM_ATA, FRIEND_ATA, TOKEN_PROGRAM],
        pre_token=[token_balance(1, VICTIM, 1000)],
        post_token=[token_balance(1, VICTIM, 0), token_balance(2, VICTIM, 1, mint=BONK, decimals=5)],
    )
    report = analyze_transaction(raw, registry)
    assert any(f.pattern_id == PatternId.UNMATCHED_LOSS for f in report.findings)
    assert report.overall_severity == Severity.MEDIUM
    assert report.affected_accounts[0].mint == USDC


def test_scenario_d_failed_transaction_is_skipped(drainer_registry):
    """meta.err set on what looks like a hijack: NONE with a skip reason."""
    raw = make_raw_tx([set_authority_ix()], err={"InstructionError": [0, {"Custom": 1}]})
    report = analyze_transaction(raw, drainer_registry)
    assert report.overall_severity == Severity.NONE
    assert report.skip_reason == "transaction failed on-chain"
    assert report.findings == ()
    assert report.to_dict()["skip_reason"] == "transaction failed on-chain"


# --- properties --------------------------------------------------------------


def test_hijack_to_non_safe_address_is_critical(registry):
    """Nested or not, an accountOwner hijack reports CRITICAL with confidence >= 90."""
    outer = {"programId": "Drain3r111111111111111111111111111111111111", "accounts": []}
    raw = make_raw_tx([outer], inner=[{"index": 0, "instructions": [set_authority_ix(stack_height=2)]}])
    report = analyze_transaction(raw, registry)
    hijacks = [f for f in report.findings if f.pattern_id == PatternId.AUTHORITY_HIJACK]
    assert hijacks and hijacks[0].severity == Severity.CRITICAL
    assert hijacks[0].confidence >= 90


def test_max_approval_always_high(registry):
    report = analyze_transaction(make_raw_tx([approve_ix(U64_MAX)]), registry)
    assert report.findings[0].pattern_id == PatternId.UNLIMITED_APPROVAL
    assert report.findings[0].severity == Severity.HIGH
    assert report.overall_severity == Severity.HIGH
    assert any(r.startswith("Revoke approval for spender:") for r in report.recommendations)


@pytest.mark.parametrize("gain", [950, 975, 1000])
def test_conserved_mint_group_has_no_unmatched_loss(gain, registry):
    report = analyze_transaction(_usdc_move(1000, gain), registry)
    assert all(f.pattern_id != PatternId.UNMATCHED_LOSS for f in report.findings + report.suppressed_findings)


def test_identical_inputs_identical_reports(drainer_registry):
    raw = _usdc_move(1000, 0, instructions=[set_authority_ix(), approve_ix(U64_MAX), token_transfer_ix(1000)])
    first = analyze_transaction(raw, drainer_registry).to_json()
    second = analyze_transaction(raw, drainer_registry).to_json()
    assert first == second


def test_known_drainer_overrides_everything(drainer_registry):
    """Any drainer destination makes the report CRITICAL with confidence 100."""
    raw = _usdc_move(1000, 0, instructions=[set_authority_ix(), approve_ix(U64_MAX)])
    report = analyze_transaction(raw, drainer_registry)
    assert report.overall_severity == Severity.CRITICAL
    assert report.overall_confidence == 100
    assert report.attack_type == PatternId.KNOWN_BAD_ACTOR
    top = report.findings[0]
    assert top.pattern_id == PatternId.KNOWN_BAD_ACTOR
    assert {c.pattern_id for c in top.corroborating} >= {PatternId.AUTHORITY_HIJACK, PatternId.UNLIMITED_APPROVAL}


def test_registry_outage_degrades_without_failing():
    backend = MagicMock(spec=["is_known_drainer", "is_known_safe_program"])
    backend.is_known_drainer.side_effect = RegistryUnavailable("timeout")
    backend.is_known_safe_program.side_effect = RegistryUnavailable("timeout")
    report = analyze_transaction(make_raw_tx([set_authority_ix()]), backend)
    assert report.registry_degraded
    assert report.overall_severity == Severity.CRITICAL
    assert report.overall_confidence == 90


def test_no_registry_treats_everything_as_unknown():
    report = analyze_transaction(make_raw_tx([set_authority_ix()]))
    assert report.overall_confidence == 95


def test_disabled_detector_config(registry):
    cfg = DetectionConfig(disabled_detectors=frozenset({"AuthorityHijack"}))
    report = analyze_transaction(make_raw_tx([set_authority_ix()]), registry, config=cfg)
    assert report.overall_severity == Severity.NONE


def test_malformed_transaction_raises(registry):
    raw = make_raw_tx()
    del raw["meta"]
    with pytest.raises(MalformedTransaction):
        analyze_transaction(raw, registry)


# --- batch / wallet ----------------------------------------------------------


def test_analyze_batch_preserves_order_and_isolates_errors(registry):
    broken = make_raw_tx(signature="sigBroken")
    broken["meta"]["preBalances"] = []
    raws = [
        make_raw_tx([set_authority_ix()], signature="sigHijack"),
        broken,
        _usdc_move(1000, 0, signature="sigLoss"),
        _usdc_move(1000, 1000, signature="sigSwap"),
    ]
    items = analyze_batch(raws, registry, max_workers=3)
    assert [i.index for i in items] == [0, 1, 2, 3]
    assert [i.signature for i in items] == ["sigHijack", "sigBroken", "sigLoss", "sigSwap"]
    assert items[1].report is None and "preBalances" in items[1].error
    assert items[0].ok and items[0].report.overall_severity == Severity.CRITICAL

    summary = summarize_wallet(items, wallet=VALID_WALLET)
    assert summary.total == 4
    assert summary.malformed == 1
    assert summary.analyzed == 3
    assert summary.worst_severity == Severity.CRITICAL
    assert summary.max_risk_score == 95
    assert summary.verdict == Verdict.DRAINED
    assert summary.flagged_signatures == ["sigHijack", "sigLoss"]
    assert summary.attacker_addresses == [ATTACKER]


def test_analyze_batch_empty():
    assert analyze_batch([]) == []


def test_summarize_wallet_counts_skipped_reports(registry):
    failed = analyze_transaction(make_raw_tx([set_authority_ix()], err="Err", signature="sigFailed"), registry)
    summary = summarize_wallet([failed])
    assert summary.skipped == 1
    assert summary.analyzed == 0
    assert summary.verdict == Verdict.SAFE
    assert summary.to_dict()["worst_severity"] == "NONE"


def test_summarize_wallet_rejects_invalid_wallet():
    with pytest.raises(ValueError):
        summarize_wallet([], wallet="not a wallet")


def test_registry_snapshot_shared_across_batch():
    """One registry instance serves every item; lookups are per run."""
    reg = StaticEntityRegistry(drainers=[ATTACKER])
    items = analyze_batch([make_raw_tx([set_authority_ix()], signature=f"sig{i}") for i in range(5)], reg)
    assert all(i.report.overall_confidence == 100 for i in items)


def test_registry_outage_with_env_penalty_out_of_range(monkeypatch):
    """An out-of-range penalty in the environment falls back to defaults instead of breaking analysis."""
    monkeypatch.setenv("DRAINGUARD_REGISTRY_DEGRADED_PENALTY", "-10")
    cfg = get_settings()
    assert cfg.registry_degraded_penalty == 5
    backend = MagicMock(spec=["is_known_drainer", "is_known_safe_program"])
    backend.is_known_drainer.side_effect = RegistryUnavailable("timeout")
    backend.is_known_safe_program.side_effect = RegistryUnavailable("timeout")
    report = analyze_transaction(make_raw_tx([set_authority_ix()]), backend, config=cfg)
    assert report.registry_degraded
    assert report.overall_confidence == 90
