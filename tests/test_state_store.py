import json
import stat

import pytest

from gentoo_setup.state_store import (
    ensure_defaults,
    is_step_completed,
    load_document,
    load_state,
    mark_step_completed,
    merge_answers,
    record_decision,
    save_state,
)


def test_missing_state_is_empty(tmp_path):
    assert load_state(str(tmp_path / "none.json")) == {}


def test_save_never_writes_secrets(tmp_path):
    path = tmp_path / "state.json"
    state = ensure_defaults({}, tool="gentoo-install")
    state["secrets"]["root_password"] = "hunter2"
    save_state(str(path), state)

    text = path.read_text()
    assert "hunter2" not in text
    assert "secrets" not in json.loads(text)
    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert state["secrets"]["root_password"] == "hunter2"


def test_yaml_round_trip(tmp_path):
    path = tmp_path / "state.yaml"
    state = ensure_defaults({}, tool="gentoo-setup-desktop")
    mark_step_completed(state, "10_users")
    mark_step_completed(state, "10_users")
    record_decision(state, "profile_number", "3")
    save_state(str(path), state)

    loaded = load_state(str(path))
    assert loaded["tool"] == "gentoo-setup-desktop"
    assert loaded["execution"]["completed_steps"] == ["10_users"]
    assert loaded["execution"]["decisions"] == {"profile_number": "3"}
    assert is_step_completed(loaded, "10_users")


def test_merge_answers_moves_passwords_to_secrets(tmp_path):
    answers = tmp_path / "answers.yaml"
    answers.write_text("disk: /dev/vda\nroot_password: pw\nswap: auto\nwipe_confirm: WIPE\n")
    state = ensure_defaults({}, tool="gentoo-install")
    merge_answers(state, load_document(str(answers)))
    assert state["config"] == {"disk": "/dev/vda", "swap": "auto", "wipe_confirm": "WIPE"}
    assert state["secrets"] == {"root_password": "pw"}


def test_non_mapping_document_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_document(str(path))


def test_ensure_defaults_keeps_existing_values():
    state = ensure_defaults({"config": {"disk": "/dev/sda"}}, tool="gentoo-install")
    assert state["config"] == {"disk": "/dev/sda"}
    assert state["execution"]["completed_steps"] == []
