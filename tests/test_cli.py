"""CLI argument parsing and error reporting."""
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest

from agent import _build_arg_parser, run_message_action, run_teach
from schemas.results import ErrorCode


def test_approve_arguments():
    args = _build_arg_parser().parse_args([
        "approve", "--user", "u_ana", "--message-id", "8f0c5a52-1f1e-4d0e-9a39-2d1f4c3f6b10",
        "--response", "R$50", "--edited",
    ])
    assert args.command == "approve"
    assert args.edited is True
    assert args.response == "R$50"


def test_settings_user_is_optional():
    args = _build_arg_parser().parse_args(["settings", "--mode", "semi_auto", "--threshold", "90"])
    assert args.user is None
    assert args.threshold == 90


def test_feedback_status_is_restricted():
    with pytest.raises(SystemExit):
        _build_arg_parser().parse_args(
            ["feedback", "--user", "u", "--message-id", "x", "--status", "meh"]
        )


@pytest.mark.asyncio
async def test_invalid_message_id_is_a_validation_error(capsys):
    args = _build_arg_parser().parse_args(["reject", "--user", "u_ana", "--message-id", "not-a-uuid"])

    with patch("agent.get_db") as get_db:
        ok = await run_message_action(args)

    assert ok is False
    get_db.assert_not_called()
    assert ErrorCode.VALIDATION_ERROR.value in capsys.readouterr().out


@pytest.mark.asyncio
async def test_teach_for_unknown_user_is_not_found(session, capsys):
    @asynccontextmanager
    async def test_db():
        yield session

    with patch("agent.get_db", new=test_db):
        ok = await run_teach("u_nobody", "Qual o preço?", "R$50")

    assert ok is False
    assert ErrorCode.NOT_FOUND.value in capsys.readouterr().out
