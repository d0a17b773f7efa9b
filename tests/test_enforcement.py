"""Global process enforcement flag."""

import pytest

from dealflow.models.feature_flag import FeatureFlag
from dealflow.services import process_service


@pytest.fixture()
def process(app, deal_schema):
    return process_service.get_store("org-a").create({
        "name": "Sales pipeline",
        "governed_field_key": "stage",
        "transitions": [{"from": "prospecting", "to": "qualification"}],
    })


class TestEnforcementFlag:
    def test_default_comes_from_config(self, app):
        assert process_service.is_enforcement_enabled() is True
        app.config["PROCESS_ENFORCEMENT_DEFAULT"] = False
        try:
            assert process_service.is_enforcement_enabled() is False
        finally:
            app.config["PROCESS_ENFORCEMENT_DEFAULT"] = True

    def test_set_writes_a_single_row(self):
        assert process_service.set_enforcement(False) is False
        assert process_service.set_enforcement(True, actor="ops") is True
        flag = FeatureFlag.query.filter_by(key=process_service.ENFORCEMENT_FLAG).one()
        assert flag.enabled is True
        assert flag.updated_by == "ops"
        assert FeatureFlag.query.count() == 1

    def test_stored_value_wins_over_config_default(self, app):
        process_service.set_enforcement(False)
        assert process_service.is_enforcement_enabled() is False


class TestGlobalSwitch:
    def test_off_allows_changes_in_every_organization(self, process):
        assert not process_service.can_change_field(
            "org-a", {}, "stage", "prospecting", "closing",
        ).ok

        process_service.set_enforcement(True)
        process_service.set_enforcement(False)

        result = process_service.can_change_field("org-a", {}, "stage", "prospecting", "closing")
        assert result.ok

    def test_off_after_enabling_twice_still_off(self, process):
        process_service.set_enforcement(True, actor="org-a admin")
        process_service.set_enforcement(True, actor="org-b admin")
        process_service.set_enforcement(False, actor="ops")
        assert process_service.can_change_field(
            "org-a", {}, "stage", "prospecting", "closing",
        ).ok
        assert process_service.available_transitions(
            "org-a", {}, "stage", "prospecting",
        )["exit"]["ok"] is True
