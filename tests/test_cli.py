import json

from cli.cli import create_parser, main


def _lead(lead_id, **fields):
    data = {
        "id": lead_id,
        "created_at": "2024-05-01T12:00:00Z",
        "name": "Jane Doe",
        "email": "jane.doe@acme.io",
        "phone": "(512) 555-0123",
        "company": "Acme Corp",
    }
    data.update(fields)
    return data


def _write(tmp_path, name, payload):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_parser_commands():
    parser = create_parser()
    args = parser.parse_args(["score", "leads.json", "--json", "--max-concurrent", "4"])
    assert args.command == "score"
    assert args.max_concurrent == 4
    assert args.json is True


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_score_json(tmp_path, capsys, policy_document):
    payload = {
        "policy": policy_document,
        "leads": [
            _lead("new"),
            _lead("other", name="Bob Stone", email="bob@stone.dev", phone="2125550000", company="Stone LLC"),
        ],
        "existing": [_lead("old", created_at="2024-04-28T09:00:00Z")],
    }
    exit_code = main(["score", _write(tmp_path, "payload.json", payload), "--json"])
    out = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    results = {r["lead_id"]: r for r in out["results"]}
    assert results["new"]["decision"]["outcome"] == "merge_candidate"
    assert results["new"]["decision"]["merge_candidate_ids"] == ["old"]
    assert results["other"]["decision"]["outcome"] == "validated"
    assert out["stats"]["total_leads"] == 2


def test_score_with_policy_file(tmp_path, capsys, policy_document):
    policy_path = _write(tmp_path, "policy.json", policy_document)
    payload_path = _write(tmp_path, "payload.json", {"leads": [_lead("solo")]})
    assert main(["score", payload_path, "--policy", policy_path]) == 0
    assert "solo: validated" in capsys.readouterr().out


def test_compare_json(tmp_path, capsys, policy_document):
    payload = {
        "policy": policy_document,
        "lead_a": _lead("a", name="Jonathan Livingstone", email="jl@example.com", phone="512-555-0100"),
        "lead_b": _lead("b", name="Jonathon Levingstona", email="jl@example.com", phone="512-555-0199"),
    }
    assert main(["compare", _write(tmp_path, "pair.json", payload), "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["aggregate_score"] == 63


def test_classify(tmp_path, capsys, policy_document):
    payload = {
        "policy": policy_document,
        "lead_id": "lead-7",
        "subscores": {"engagement": 90, "fit": 80, "interest": 85, "budget": 70, "timeline": 60},
    }
    assert main(["classify", _write(tmp_path, "scores.json", payload)]) == 0
    assert "lead-7: high" in capsys.readouterr().out


def test_invalid_policy_reports_error(tmp_path, capsys, policy_document):
    policy_document["validation"]["auto_reject_threshold"] = 95
    payload = {"policy": policy_document, "leads": [_lead("a")]}
    assert main(["score", _write(tmp_path, "payload.json", payload)]) == 1
    assert "invalid_config" in capsys.readouterr().out


def test_invalid_payload_reports_error(tmp_path, capsys, policy_document):
    payload = {"policy": policy_document, "leads": []}
    assert main(["score", _write(tmp_path, "payload.json", payload)]) == 1
    assert "Invalid payload" in capsys.readouterr().out


def test_missing_input_file(tmp_path, capsys):
    assert main(["compare", str(tmp_path / "nope.json")]) == 1
    assert "Cannot read input" in capsys.readouterr().out
