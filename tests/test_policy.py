"""Tests for the recovery policy resolver: proves config loads and fails loud."""

import copy
import json

import pytest

from discrecovery.models.notification import NotificationType
from discrecovery.models.recovery import RecoveryStatus
from discrecovery.policy.resolver import PolicyResolver

from conftest import CONFIG_DIR


@pytest.fixture
def raw_policy() -> dict:
    with (CONFIG_DIR / "recovery_policy.json").open(encoding="utf-8") as f:
        return json.load(f)


class TestPolicyLoading:
    def test_shipped_config_loads(self, policy: PolicyResolver) -> None:
        assert policy.version == "1.0"

    def test_default_closure_status(self, policy: PolicyResolver) -> None:
        assert policy.reclaim_closure_status() == RecoveryStatus.CLOSED_ON_RECLAIM

    def test_photo_limits(self, policy: PolicyResolver) -> None:
        limits = policy.photo_policy()
        assert limits.max_bytes == 5 * 1024 * 1024
        assert set(limits.allowed_types) == {"image/jpeg", "image/png", "image/webp"}

    def test_short_code_format(self, policy: PolicyResolver) -> None:
        alphabet, length = policy.short_code_format()
        assert length == 12
        assert "O" not in alphabet and "0" not in alphabet
        assert "I" not in alphabet and "1" not in alphabet

    def test_every_notification_type_has_template(self, policy: PolicyResolver) -> None:
        for kind in NotificationType:
            template = policy.notification_template(kind)
            assert template.title
            assert "{disc_name}" in template.body


class TestPolicyValidation:
    def test_missing_version_rejected(self, raw_policy: dict) -> None:
        del raw_policy["version"]
        with pytest.raises(ValueError, match="version"):
            PolicyResolver(raw_policy)

    def test_legacy_closure_status_accepted(self, raw_policy: dict) -> None:
        raw_policy["lifecycle"]["reclaim_closure_status"] = "recovered"
        assert PolicyResolver(raw_policy).reclaim_closure_status() == RecoveryStatus.RECOVERED

    def test_unsupported_closure_status_rejected(self, raw_policy: dict) -> None:
        raw_policy["lifecycle"]["reclaim_closure_status"] = "cancelled"
        with pytest.raises(ValueError, match="closure status"):
            PolicyResolver(raw_policy)

    def test_unknown_closure_status_rejected(self, raw_policy: dict) -> None:
        raw_policy["lifecycle"]["reclaim_closure_status"] = "gone"
        with pytest.raises(ValueError, match="Unknown"):
            PolicyResolver(raw_policy)

    def test_missing_template_rejected(self, raw_policy: dict) -> None:
        del raw_policy["notifications"]["templates"]["disc_found"]
        with pytest.raises(ValueError, match="disc_found"):
            PolicyResolver(raw_policy)

    def test_non_positive_photo_limit_rejected(self, raw_policy: dict) -> None:
        raw_policy["drop_off"]["max_photo_bytes"] = 0
        with pytest.raises(ValueError, match="max_photo_bytes"):
            PolicyResolver(raw_policy)

    def test_missing_section_fails_loud(self, raw_policy: dict) -> None:
        broken = copy.deepcopy(raw_policy)
        del broken["drop_off"]
        with pytest.raises(KeyError):
            PolicyResolver(broken)

    def test_unknown_role_rejected(self, policy: PolicyResolver) -> None:
        with pytest.raises(ValueError, match="role"):
            policy.role_name("referee")

    def test_missing_config_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            PolicyResolver.from_config_dir(tmp_path)
