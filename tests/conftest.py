from typing import Any

import pytest

from tgdispatch.telegram.api_models import File

TOKEN = "123456:ABCdefGhIJKlmnoPQRstuVWXyz"


class _FakeBot:
    def __init__(self, token: str = TOKEN) -> None:
        self.token = token
        self.file_calls: list[str] = []
        self.missing: set[str] = set()
        self.failing: dict[str, Exception] = {}
        self.sent: list[tuple[int | str, str]] = []

    async def get_file(self, file_id: str) -> File | None:
        self.file_calls.append(file_id)
        if file_id in self.failing:
            raise self.failing[file_id]
        if file_id in self.missing:
            return None
        return File(file_id=file_id, file_path=f"files/{file_id}.bin")

    async def send_message(self, chat_id: int | str, text: str, **kwargs: Any) -> dict:
        _ = kwargs
        self.sent.append((chat_id, text))
        return {"message_id": len(self.sent)}


@pytest.fixture
def fake_bot() -> _FakeBot:
    return _FakeBot()
