from __future__ import annotations

import pytest

from core.domain.errors import ValidationError
from core.services.command_parser import extract_command, strip_command_blocks

BLOCK = '<execute_action>{"action": "update_port", "payload": {"resourceId": "Q2-AAAA", "portId": "5-8", "vlan": 10}}</execute_action>'


@pytest.mark.parametrize(
    "text",
    [
        BLOCK,
        f"Sure, updating those ports now.\n\n{BLOCK}",
        f"{BLOCK}\nI'll report back once it's done.",
        f"Okay!\n{BLOCK}\nThat should do it.",
    ],
)
def test_same_command_regardless_of_surrounding_prose(text: str) -> None:
    command = extract_command(text)

    assert command is not None
    assert command.name == "update_port"
    assert dict(command.payload) == {"resourceId": "Q2-AAAA", "portId": "5-8", "vlan": 10}


def test_no_block_is_not_an_error() -> None:
    assert extract_command("Port 5 is an access port on VLAN 10.") is None
    assert extract_command("") is None


def test_json_fence_inside_block_is_removed() -> None:
    text = '<execute_action>\n```json\n{"action": "get_vpn_status", "payload": {}}\n```\n</execute_action>'

    command = extract_command(text)

    assert command is not None
    assert command.name == "get_vpn_status"
    assert dict(command.payload) == {}


def test_flattened_payload_fallback() -> None:
    command = extract_command('<execute_action>{"action": "get_events", "resourceId": "Q2-BBBB"}</execute_action>')

    assert command is not None
    assert dict(command.payload) == {"resourceId": "Q2-BBBB"}


def test_name_key_is_accepted_and_excluded_from_flat_payload() -> None:
    command = extract_command('<execute_action>{"name": "get_device", "serial": "Q2-CCCC"}</execute_action>')

    assert command is not None
    assert command.name == "get_device"
    assert dict(command.payload) == {"serial": "Q2-CCCC"}


def test_flat_payload_keeps_name_field_when_action_names_the_command() -> None:
    command = extract_command(
        '<execute_action>{"action": "update_port", "resourceId": "Q2-AAAA", "portId": "5", "name": "Uplink"}'
        "</execute_action>"
    )

    assert command is not None
    assert command.name == "update_port"
    assert dict(command.payload) == {"resourceId": "Q2-AAAA", "portId": "5", "name": "Uplink"}


def test_null_payload_is_empty() -> None:
    command = extract_command('<execute_action>{"action": "list_networks", "payload": null}</execute_action>')

    assert command is not None
    assert dict(command.payload) == {}


@pytest.mark.parametrize(
    "body",
    [
        '{"action": "update_port", "payload": {',
        "not json at all",
        "[1, 2, 3]",
        '{"payload": {"resourceId": "Q2"}}',
        '{"action": "", "payload": {}}',
        '{"action": "get_device", "payload": ["Q2"]}',
    ],
)
def test_malformed_blocks_raise_validation_error(body: str) -> None:
    with pytest.raises(ValidationError):
        extract_command(f"Here you go: <execute_action>{body}</execute_action>")


def test_first_of_several_blocks_is_used(caplog: pytest.LogCaptureFixture) -> None:
    text = (
        '<execute_action>{"action": "reboot_device", "payload": {"resourceId": "A"}}</execute_action>'
        '<execute_action>{"action": "reboot_device", "payload": {"resourceId": "B"}}</execute_action>'
    )

    with caplog.at_level("WARNING"):
        command = extract_command(text)

    assert command is not None
    assert command.payload["resourceId"] == "A"
    assert "only the first is executed" in caplog.text


def test_payload_is_read_only() -> None:
    command = extract_command(BLOCK)

    assert command is not None
    with pytest.raises(TypeError):
        command.payload["vlan"] = 20  # type: ignore[index]


def test_strip_command_blocks_keeps_narration() -> None:
    assert strip_command_blocks(f"Updating now.\n{BLOCK}") == "Updating now."
    assert strip_command_blocks(BLOCK) == ""
