"""Run an ADK agent once and return its session state."""
import uuid

from google.adk.runners import Runner
from google.adk.sessions import InMemorySessionService
from google.genai.types import Content, Part

APP_USER_ID = "reply_copilot"


async def run_agent(team, message: str, session_id: str | None = None) -> dict:
    """Run a team on a single user message and return the final session state."""
    session_id = session_id or uuid.uuid4().hex
    session_service = InMemorySessionService()
    app_name = f"copilot_{team.name.lower()}"
    await session_service.create_session(
        app_name=app_name,
        user_id=APP_USER_ID,
        session_id=session_id,
    )
    runner = Runner(
        agent=team,
        app_name=app_name,
        session_service=session_service,
    )
    content = Content(role="user", parts=[Part(text=message)])
    final_response = ""
    async for event in runner.run_async(
        user_id=APP_USER_ID,
        session_id=session_id,
        new_message=content,
    ):
        if event.is_final_response() and event.content:
            for part in event.content.parts:
                if part.text:
                    final_response += part.text

    session = await session_service.get_session(
        app_name=app_name,
        user_id=APP_USER_ID,
        session_id=session_id,
    )
    state = dict(session.state) if session else {}
    state.setdefault("final_response", final_response)
    return state
