from typing import Optional

from .client import ChatController
from .messages import Message


class ChatInput:
    """Model of the message box under the conversation.

    The textarea grows with its content between ``MIN_HEIGHT`` and
    ``MAX_HEIGHT`` pixels and scrolls past that. While a reply is being
    generated the send button turns into a stop button.
    """

    MIN_HEIGHT = 56
    MAX_HEIGHT = 200
    LINE_HEIGHT = 24
    PADDING = 32

    def __init__(self, controller: ChatController, placeholder: str = "Type your message..."):
        self.controller = controller
        self.placeholder = placeholder
        self.text = ""
        self.focused = True

    @property
    def _natural_height(self) -> int:
        lines = self.text.count("\n") + 1
        return lines * self.LINE_HEIGHT + self.PADDING

    @property
    def height(self) -> int:
        return max(self.MIN_HEIGHT, min(self._natural_height, self.MAX_HEIGHT))

    @property
    def overflow(self) -> str:
        return "auto" if self._natural_height >= self.MAX_HEIGHT else "hidden"

    @property
    def busy(self) -> bool:
        return self.controller.busy

    @property
    def action(self) -> str:
        return "stop" if self.busy else "send"

    @property
    def can_submit(self) -> bool:
        return bool(self.text.strip()) and not self.busy

    def type(self, chars: str) -> None:
        self.text += chars

    async def key_press(self, key: str, shift: bool = False) -> bool:
        """Handle a key press. Returns True when the default action is replaced."""
        if key != "Enter":
            return False
        if shift:
            self.text += "\n"
            return True
        await self.submit()
        return True

    async def submit(self) -> Optional[Message]:
        trimmed = self.text.strip()
        if not trimmed or self.busy:
            return None
        self.text = ""
        message = await self.controller.send_message(trimmed)
        self.focused = True
        return message

    async def stop(self) -> None:
        await self.controller.stop()
        self.focused = True

    async def press_action(self) -> Optional[Message]:
        if self.busy:
            await self.stop()
            return None
        return await self.submit()

    async def new_topic(self) -> None:
        await self.controller.stop()
        self.controller.set_messages([], keep_system=True)
        self.text = ""
        self.focused = True
