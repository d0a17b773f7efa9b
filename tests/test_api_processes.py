"""
Process configuration & validation API — Tests
Covers CRUD, activation, duplication, stage reconciliation, enforcement and
the validate / available-transitions endpoints.
"""

import pytest

API = "/api/v1"
ORG = {"X-Organization-Id": "org-test"}


def _post(client, url, data=None, headers=ORG):
    return client.post(API + url, json=data or {}, headers=headers)


def _get(client, url, headers=ORG):
    return client.get(API + url, headers=headers)


def _put(client, url, data=None, headers=ORG):
    return client.put(API + url, json=data or {}, headers=headers)


def _delete(client, url, headers=ORG):
    return client.delete(API + url, headers=headers)


# ── fixtures ──

@pytest.fixture()
def process(client, deal_schema):
    res = _post(client, "/processes", {
        "name": "Sales pipeline",
        "governed_field_key": "stage",
        "transitions": [
            {"from": "prospecting", "to": "qualification"},
            {"from": "qualification", "to": "proposal"},
            {"from": "proposal", "to": "negotiation"},
            {"from": "negotiation", "to": "closing"},
        ],
        "stage_requirements": {"negotiation": ["value", "expected_close_date"]},
    })
    assert res.status_code == 201
    return res.get_json()["process"]


def _validate(client, record, from_value, to_value, field_key="stage"):
    res = _post(client, "/processes/validate", {
        "record": record,
        "field_key": field_key,
        "from_value": from_value,
        "to_value": to_value,
    })
    assert res.status_code == 200
    return res.get_json()


# ═══════════════════════════════════════════════════════════════
#  Scope
# ═══════════════════════════════════════════════════════════════


class TestScope:
    def test_missing_scope_is_rejected(self, client):
        res = client.get(API + "/processes")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_SCOPE_REQUIRED"

    def test_scope_from_query_string(self, client, process):
        res = client.get(API + "/processes?organization_id=org-test")
        assert res.status_code == 200
        assert res.get_json()["total"] == 1

    def test_processes_are_scoped(self, client, process):
        res = _get(client, "/processes", headers={"X-Organization-Id": "org-other"})
        assert res.get_json()["total"] == 0


# ═══════════════════════════════════════════════════════════════
#  CRUD
# ═══════════════════════════════════════════════════════════════


class TestProcessCrud:
    def test_create(self, process):
        assert process["governed_field_key"] == "stage"
        assert process["governed_field_label"] == "Stage"
        assert process["enabled"] is True
        assert process["is_active"] is True
        assert process["stage_order"][0] == "prospecting"
        assert process["stage_requirements"] == {
            "negotiation": ["expected_close_date", "value"],
        }

    def test_create_requires_name(self, client, deal_schema):
        res = _post(client, "/processes", {"governed_field_key": "stage"})
        assert res.status_code == 400

    def test_create_requires_field(self, client, deal_schema):
        res = _post(client, "/processes", {"name": "x"})
        assert res.status_code == 400

    def test_create_rejects_non_select_field(self, client, deal_schema):
        res = _post(client, "/processes", {"name": "x", "governed_field_key": "value"})
        assert res.status_code == 422
        assert res.get_json()["code"] == "PROCESS_RULE"

    def test_list_filtered_by_field(self, client, process):
        res = _get(client, "/processes?governed_field_key=stage")
        assert res.get_json()["total"] == 1
        res = _get(client, "/processes?governed_field_key=tags")
        assert res.get_json()["total"] == 0

    def test_get(self, client, process):
        res = _get(client, f"/processes/{process['id']}")
        assert res.status_code == 200
        assert res.get_json()["process"]["name"] == "Sales pipeline"

    def test_get_unknown(self, client, deal_schema):
        res = _get(client, "/processes/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_update(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"name": "Renamed"})
        assert res.status_code == 200
        body = res.get_json()["process"]
        assert body["name"] == "Renamed"
        assert body["transitions"] == process["transitions"]

    def test_disable_clears_activation(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"enabled": False})
        assert res.get_json()["process"]["is_active"] is False
        assert _get(client, "/processes/active").get_json()["active"] == {}

    def test_delete(self, client, process):
        res = _delete(client, f"/processes/{process['id']}")
        assert res.status_code == 200
        assert _get(client, f"/processes/{process['id']}").status_code == 404
        assert _get(client, "/processes/active").get_json()["active"] == {}

    def test_duplicate(self, client, process):
        res = _post(client, f"/processes/{process['id']}/duplicate")
        assert res.status_code == 201
        clone = res.get_json()["process"]
        assert clone["id"] != process["id"]
        assert clone["name"] == "Sales pipeline (copy)"
        assert clone["enabled"] is False
        assert clone["is_active"] is False
        active = _get(client, "/processes/active").get_json()["active"]
        assert active == {"stage": process["id"]}


class TestMalformedPayloads:
    """Wrong-typed fields are rejected with 422 instead of coerced."""

    def _create(self, client, **extra):
        return _post(client, "/processes", {
            "name": "Pipeline", "governed_field_key": "stage", **extra,
        })

    def test_enabled_string_is_rejected(self, client, deal_schema):
        res = self._create(client, enabled="false")
        assert res.status_code == 422
        assert res.get_json()["details"] == {"enabled": "invalid"}
        assert _get(client, "/processes").get_json()["total"] == 0
        assert _get(client, "/processes/active").get_json()["active"] == {}

    def test_transition_without_to(self, client, deal_schema):
        res = self._create(client, transitions=[{"from": "prospecting"}])
        assert res.status_code == 422
        assert res.get_json()["code"] == "PROCESS_RULE"

    def test_transitions_must_be_a_list(self, client, deal_schema):
        res = self._create(client, transitions={"from": "a", "to": "b"})
        assert res.status_code == 422

    def test_stage_requirements_must_be_an_object(self, client, deal_schema):
        res = self._create(client, stage_requirements=["value"])
        assert res.status_code == 422
        assert res.get_json()["details"] == {"stage_requirements": "invalid"}

    def test_stage_requirement_keys_must_be_a_list(self, client, deal_schema):
        res = self._create(client, stage_requirements={"negotiation": "value"})
        assert res.status_code == 422

    def test_string_stage_order_is_not_split(self, client, deal_schema):
        res = self._create(client, stage_order="prospecting")
        assert res.status_code == 422
        assert res.get_json()["details"] == {"stage_order": "invalid"}

    def test_update_enabled_string_keeps_process(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"enabled": "false"})
        assert res.status_code == 422
        body = _get(client, f"/processes/{process['id']}").get_json()["process"]
        assert body["enabled"] is True
        assert body["is_active"] is True

    def test_update_rejects_malformed_transitions(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"transitions": [["proposal"]]})
        assert res.status_code == 422
        body = _get(client, f"/processes/{process['id']}").get_json()["process"]
        assert body["transitions"] == process["transitions"]

    def test_update_rejects_null_stage_order(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"stage_order": None})
        assert res.status_code == 422

    def test_update_rejects_list_requirements(self, client, process):
        res = _put(client, f"/processes/{process['id']}", {"stage_requirements": ["value"]})
        assert res.status_code == 422


# ═══════════════════════════════════════════════════════════════
#  Activation
# ═══════════════════════════════════════════════════════════════


class TestActivation:
    def test_set_active(self, client, process):
        other = _post(client, "/processes", {"name": "Other", "governed_field_key": "stage"})
        other_id = other.get_json()["process"]["id"]
        assert other.get_json()["process"]["is_active"] is False

        res = _post(client, "/processes/set-active", {
            "governed_field_key": "stage", "process_id": other_id,
        })
        assert res.status_code == 200
        assert _get(client, "/processes/active").get_json()["active"] == {"stage": other_id}

    def test_clear_active(self, client, process):
        res = _post(client, "/processes/set-active", {
            "governed_field_key": "stage", "process_id": None,
        })
        assert res.status_code == 200
        assert _get(client, "/processes/active").get_json()["active"] == {}

    def test_disabled_process_cannot_be_activated(self, client, process):
        clone = _post(client, f"/processes/{process['id']}/duplicate").get_json()["process"]
        res = _post(client, "/processes/set-active", {
            "governed_field_key": "stage", "process_id": clone["id"],
        })
        assert res.status_code == 422

    def test_field_key_required(self, client, process):
        res = _post(client, "/processes/set-active", {"process_id": process["id"]})
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
#  Stages
# ═══════════════════════════════════════════════════════════════


class TestStages:
    def test_stages_follow_schema_changes(self, client, process, deal_schema):
        stage = deal_schema["stage"]
        options = [o for o in stage["options"] if o["value"] != "proposal"]
        options.append({"value": "won", "label": "Won"})
        res = _put(client, f"/schema/fields/{stage['id']}", {"options": options})
        assert res.status_code == 200

        body = _get(client, f"/processes/{process['id']}/stages").get_json()
        statuses = {s["value"]: s["status"] for s in body["stages"]}
        assert statuses["proposal"] == "obsolete"
        assert statuses["won"] == "new"
        assert statuses["prospecting"] == "current"
        assert "proposal" not in body["pickable"]
        assert body["pickable"][-1] == "won"


# ═══════════════════════════════════════════════════════════════
#  Validation
# ═══════════════════════════════════════════════════════════════


class TestValidate:
    def test_allowed_change(self, client, process):
        result = _validate(client, {}, "prospecting", "qualification")
        assert result == {
            "ok": True, "missing_fields": [], "transition_blocked": False, "message": "",
        }

    def test_missing_requirements(self, client, process):
        result = _validate(client, {"value": 0, "expected_close_date": None}, "negotiation", "closing")
        assert result["ok"] is False
        assert result["transition_blocked"] is False
        assert result["missing_fields"] == [
            {"field_key": "expected_close_date", "field_label": "Expected Close Date"},
        ]

    def test_requirements_met(self, client, process):
        record = {"value": 100, "expected_close_date": "2024-01-01"}
        assert _validate(client, record, "negotiation", "closing")["ok"] is True

    def test_blocked_transition(self, client, process):
        result = _validate(client, {}, "prospecting", "proposal")
        assert result["ok"] is False
        assert result["transition_blocked"] is True
        assert result["message"] == 'transition "Prospecting" → "Proposal" not permitted'

    def test_same_value(self, client, process):
        assert _validate(client, {}, "negotiation", "negotiation")["ok"] is True

    def test_ungoverned_field(self, client, process):
        assert _validate(client, {}, "a", "b", field_key="title")["ok"] is True

    def test_field_key_required(self, client, process):
        res = _post(client, "/processes/validate", {"from_value": "a", "to_value": "b"})
        assert res.status_code == 400

    def test_record_must_be_object(self, client, process):
        res = _post(client, "/processes/validate", {
            "record": [1], "field_key": "stage", "from_value": "a", "to_value": "b",
        })
        assert res.status_code == 400

    def test_delete_then_validate(self, client, process):
        _delete(client, f"/processes/{process['id']}")
        assert _validate(client, {}, "prospecting", "closing")["ok"] is True


class TestEnforcement:
    def test_defaults_to_enabled(self, client, process):
        res = _get(client, "/processes/enforcement")
        assert res.get_json() == {"enabled": True}

    def test_toggle_off_allows_everything(self, client, process):
        res = _put(client, "/processes/enforcement", {"enabled": False})
        assert res.status_code == 200
        assert res.get_json() == {"enabled": False}
        assert _validate(client, {}, "prospecting", "closing")["ok"] is True

        _put(client, "/processes/enforcement", {"enabled": True})
        assert _validate(client, {}, "prospecting", "closing")["ok"] is False

    def test_toggle_is_global(self, client, process):
        _put(client, "/processes/enforcement", {"enabled": False})
        res = _get(client, "/processes/enforcement", headers={"X-Organization-Id": "org-other"})
        assert res.get_json() == {"enabled": False}

    def test_no_scope_needed(self, client):
        res = client.get(API + "/processes/enforcement")
        assert res.status_code == 200

    def test_global_off_after_another_org_toggled(self, client, process):
        other = {"X-Organization-Id": "org-other"}
        _put(client, "/processes/enforcement", {"enabled": True}, headers=other)
        _put(client, "/processes/enforcement", {"enabled": False})
        assert _validate(client, {}, "prospecting", "closing")["ok"] is True

    def test_enabled_must_be_bool(self, client, process):
        res = _put(client, "/processes/enforcement", {"enabled": "no"})
        assert res.status_code == 400


class TestAvailableTransitions:
    def test_targets_from_whitelist(self, client, process):
        res = _post(client, "/processes/available-transitions", {
            "record": {}, "field_key": "stage", "from_value": "prospecting",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert [t["value"] for t in body["targets"]] == ["qualification"]
        assert body["exit"]["ok"] is True

    def test_no_targets_when_exit_blocked(self, client, process):
        res = _post(client, "/processes/available-transitions", {
            "record": {}, "field_key": "stage", "from_value": "negotiation",
        })
        body = res.get_json()
        assert body["targets"] == []
        assert body["exit"]["ok"] is False
        assert len(body["exit"]["missing_fields"]) == 2

    def test_ungoverned_field_offers_every_other_option(self, client, process):
        _post(client, "/processes/set-active", {"governed_field_key": "stage", "process_id": None})
        res = _post(client, "/processes/available-transitions", {
            "record": {}, "field_key": "stage", "from_value": "closing",
        })
        assert len(res.get_json()["targets"]) == 4
