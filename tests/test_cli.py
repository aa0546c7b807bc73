"""
Tests for the drainguard command-line entry point.
"""

from __future__ import annotations

import json

from drainguard.cli import EXIT_MALFORMED, EXIT_OK, EXIT_UNREADABLE, main

from txbuilders import ATTACKER, VALID_DRAINER, make_raw_tx, set_authority_ix


def _write(tmp_path, name, doc):
    path = tmp_path / name
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


def test_analyze_prints_report(tmp_path, capsys):
    path = _write(tmp_path, "tx.json", make_raw_tx([set_authority_ix()], signature="sigCli"))
    assert main(["analyze", path]) == EXIT_OK
    report = json.loads(capsys.readouterr().out)
    assert report["signature"] == "sigCli"
    assert report["overall_severity"] == "CRITICAL"
    assert report["attacker_addresses"] == [ATTACKER]


def test_analyze_accepts_jsonrpc_envelope(tmp_path, capsys):
    doc = {"jsonrpc": "2.0", "id": 1, "result": make_raw_tx([set_authority_ix()])}
    path = _write(tmp_path, "tx.json", doc)
    assert main(["analyze", path, "--indent", "0"]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["attack_type"] == "AuthorityHijack"


def test_analyze_with_registry_file(tmp_path, capsys):
    registry = _write(tmp_path, "registry.json", {"drainers": [VALID_DRAINER]})
    path = _write(tmp_path, "tx.json", make_raw_tx([set_authority_ix(new_authority=VALID_DRAINER)]))
    assert main(["analyze", path, "--registry", registry]) == EXIT_OK
    report = json.loads(capsys.readouterr().out)
    assert report["attack_type"] == "KnownBadActor"
    assert report["overall_confidence"] == 100


def test_analyze_malformed_exit_code(tmp_path, capsys):
    raw = make_raw_tx()
    del raw["meta"]
    path = _write(tmp_path, "tx.json", raw)
    assert main(["analyze", path]) == EXIT_MALFORMED
    assert "Malformed transaction" in capsys.readouterr().err


def test_analyze_unreadable_exit_code(tmp_path):
    bad = tmp_path / "tx.json"
    bad.write_text("{oops", encoding="utf-8")
    assert main(["analyze", str(bad)]) == EXIT_UNREADABLE
    assert main(["analyze", str(tmp_path / "missing.json")]) == EXIT_UNREADABLE


def test_wallet_command_summarizes(tmp_path, capsys):
    docs = [make_raw_tx([set_authority_ix()], signature=f"sig{i}") for i in range(3)]
    path = _write(tmp_path, "txs.json", docs)
    assert main(["wallet", path, "--workers", "2"]) == EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert out["summary"]["total"] == 3
    assert out["summary"]["verdict"] == "DRAINED"
    assert [i["signature"] for i in out["items"]] == ["sig0", "sig1", "sig2"]


def test_wallet_command_requires_array(tmp_path):
    path = _write(tmp_path, "txs.json", make_raw_tx())
    assert main(["wallet", path]) == EXIT_UNREADABLE
