"""Group registration flow."""

import pytest

from marketbot.core.registration import (
    RegistrationState,
    extract_invite_code,
    map_category,
)


async def walk(registration, *messages, user_id="admin"):
    response = None
    for message in messages:
        response = await registration.process_group_command(user_id, message)
    return response


@pytest.mark.asyncio
async def test_full_registration(registration, store):
    response = await walk(
        registration,
        "register group",
        "My Group",
        "https://chat.whatsapp.com/ABC123",
        "electronics",
    )

    assert response.state == RegistrationState.IDLE.value
    assert "Success" in response.text
    assert "/setup-guide.html" in response.text
    [group] = store.groups.values()
    assert group.invite_code == "ABC123"
    assert group.category == "electronics"
    assert group.name == "My Group"
    assert group.admin_id == "admin"


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_link(registration, store):
    await walk(registration, "register group", "My Group")

    response = await registration.process_group_command("admin", "cancel")

    assert response.state == RegistrationState.IDLE.value
    assert "cancelled" in response.text
    assert store.groups == {}
    assert await registration.process_group_command("admin", "electronics") is None


@pytest.mark.asyncio
async def test_not_a_registration_turn(registration):
    assert await registration.process_group_command("admin", "TVs in Douala") is None
    assert await registration.process_group_command("admin", "cancel") is None


@pytest.mark.asyncio
async def test_invalid_link_reprompts(registration):
    response = await walk(registration, "register", "My Group", "not a link")

    assert response.state == RegistrationState.AWAITING_INVITE_LINK.value
    assert "valid group invite link" in response.text


@pytest.mark.asyncio
async def test_already_registered_group(registration, store):
    await store.register_group("ABC123", "Old", "general", "someone")

    response = await walk(registration, "register group", "My Group", "chat.whatsapp.com/ABC123")

    assert response.state == RegistrationState.IDLE.value
    assert "already registered" in response.text
    assert store.groups["ABC123"].name == "Old"


@pytest.mark.asyncio
async def test_store_failure_resets(registration, store):
    store.fail_register = True

    response = await walk(registration, "register group", "My Group", "chat.whatsapp.com/XYZ", "fashion")

    assert response.state == RegistrationState.IDLE.value
    assert "error registering" in response.text


@pytest.mark.asyncio
async def test_users_register_independently(registration, store):
    await registration.process_group_command("a", "register group")
    await registration.process_group_command("b", "register group")
    await registration.process_group_command("a", "Group A")

    response = await registration.process_group_command("b", "Group B")

    assert response.state == RegistrationState.AWAITING_INVITE_LINK.value
    assert "Group B" in response.text


@pytest.mark.parametrize("text, code", [
    ("https://chat.whatsapp.com/ABC123", "ABC123"),
    ("join us: chat.whatsapp.com/Ab_c-9 now", "Ab_c-9"),
    ("A" * 22, "A" * 22),
    ("A" * 21, None),
    ("hello", None),
])
def test_extract_invite_code(text, code):
    assert extract_invite_code(text) == code


@pytest.mark.parametrize("text, slug", [
    ("📱 Electronics", "electronics"),
    ("Phones", "electronics"),
    ("clothes", "fashion"),
    ("🏠 Real Estate", "real_estate"),
    ("cars", "vehicles"),
    ("📦 General", "general"),
    ("Home & Garden", "home_garden"),
])
def test_map_category(text, slug):
    assert map_category(text) == slug
