import pytest

from fabricbot.datatypes.discord_datatypes import UserID
from fabricbot.datatypes.infraction_datatypes import (
    InfractionType,
    LiftBan,
    NoReversal,
    RemoveRole,
    reversal_for,
)
from fabricbot.datatypes.version_datatypes import (
    FeedFormatError,
    JiraVersion,
    MinecraftLatest,
    MinecraftVersion,
    parse_jira_versions,
    parse_manifest,
)


def test_every_infraction_type_has_a_reversal_and_action_text():
    for infraction_type in InfractionType:
        assert isinstance(reversal_for(infraction_type), (LiftBan, RemoveRole, NoReversal))
        assert infraction_type.action_text


def test_mute_variants_differ_only_by_role():
    roles = {
        reversal_for(infraction_type).role
        for infraction_type in (
            InfractionType.MUTE,
            InfractionType.META_MUTE,
            InfractionType.REACTION_MUTE,
            InfractionType.REQUESTS_MUTE,
            InfractionType.SUPPORT_MUTE,
        )
    }
    assert roles == {"muted", "no_meta", "no_reactions", "no_requests", "no_support"}
    assert isinstance(reversal_for(InfractionType.BAN), LiftBan)
    assert isinstance(reversal_for(InfractionType.WARN), NoReversal)


def test_user_id_equality_and_mention():
    uid = UserID("  123 ")
    assert uid == 123
    assert uid == "123"
    assert uid == UserID(123)
    assert uid.mention == "<@123>"
    assert hash(uid) == hash(UserID(123))
    with pytest.raises(ValueError):
        UserID(None)  # type: ignore[arg-type]


def test_parse_manifest_ignores_unknown_keys():
    latest, versions = parse_manifest(
        {
            "latest": {"release": "1.20.1", "snapshot": "23w31a"},
            "versions": [
                {"id": "23w31a", "type": "snapshot", "sha1": "x"},
                {"id": "1.20.1", "type": "release", "releaseTime": "2023-06-12"},
            ],
        }
    )

    assert latest == MinecraftLatest("1.20.1", "23w31a")
    assert versions == [MinecraftVersion("23w31a", "snapshot"), MinecraftVersion("1.20.1", "release")]


@pytest.mark.parametrize(
    "payload",
    [[], {"versions": []}, {"latest": {"release": "1"}, "versions": []}, {"latest": {}, "versions": [{"id": "x"}]}],
)
def test_parse_manifest_rejects_malformed_payloads(payload):
    with pytest.raises(FeedFormatError):
        parse_manifest(payload)


def test_parse_jira_versions_and_placeholders():
    versions = parse_jira_versions([{"id": "1", "name": "1.20"}, {"id": "2", "name": "1.21 (Future Version)"}])

    assert versions == [JiraVersion("1", "1.20"), JiraVersion("2", "1.21 (Future Version)")]
    assert [version.is_placeholder for version in versions] == [False, True]

    with pytest.raises(FeedFormatError):
        parse_jira_versions({"values": []})
