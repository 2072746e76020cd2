"""Test data builders shared across the suite."""
from db.repositories import messages as messages_repo
from schemas.messages import MessageType

USER_ID = "u_ana"
ACCOUNT_ID = "17841400000000001"
USERNAME = "cafe_da_ana"


async def make_message(session, user_id=USER_ID, external_id="c_1", **overrides):
    data = {
        "user_id": user_id,
        "external_id": external_id,
        "type": MessageType.COMMENT.value,
        "sender_id": "igsid_joao",
        "sender_username": "joao",
        "content": "Qual o preço?",
        "post_id": "m_1",
    }
    data.update(overrides)
    return await messages_repo.insert_if_new(session, data)
