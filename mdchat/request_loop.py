# mdchat/request_loop.py
"""
NDJSON request loop.

Input, one object per line:
    {"method": "complete", "params": {"text": "<markdown document>"}}

Output, one object per line:
    {"chunk": "<assistant opening delimiter>"}
    {"chunk": "<fragment>"} ...
    {"chunk": "<user opening delimiter>"}

Errors go to the log (stderr), never into the chunk stream.
"""

import json
import logging
import traceback
from typing import AsyncIterable, Awaitable, Callable, List, Optional, Sequence, TextIO, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from mdchat.errors import EmptyDocumentError, InvalidRequestError, MdChatError, UnsupportedMethodError
from mdchat.front_matter import extract_settings, strip_front_matter
from mdchat.llm_client import CompletionStream, open_completion_stream
from mdchat.settings import Settings
from mdchat.transcript import Turn, parse_transcript

logger = logging.getLogger("mdchat_loop")

COMPLETE_METHOD = "complete"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

StreamOpener = Callable[[Sequence[Turn], str], Awaitable[CompletionStream]]


class CompleteParams(BaseModel):
    model_config = ConfigDict(strict=True)

    text: str


class Request(BaseModel):
    model_config = ConfigDict(strict=True)

    method: str
    params: CompleteParams


def parse_request(line: str) -> Request:
    try:
        return Request.model_validate_json(line)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid input: {e}") from e


def decode_line(line: Union[str, bytes]) -> str:
    if isinstance(line, str):
        return line
    try:
        return line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidRequestError(f"Input line is not valid UTF-8: {e}") from e


class ChunkWriter:
    def __init__(self, stream: TextIO):
        self._stream = stream
        self.count = 0

    def write(self, chunk: str) -> None:
        self._stream.write(json.dumps({"chunk": chunk}, ensure_ascii=False) + "\n")
        self._stream.flush()
        self.count += 1


class RequestLoop:
    """
    Handles input lines one at a time. The first fully handled `complete`
    request ends the run with EXIT_SUCCESS; an unsupported method ends it with
    EXIT_FAILURE. Anything else that goes wrong abandons only that line.
    """

    def __init__(self, writer: ChunkWriter, open_stream: Optional[StreamOpener] = None):
        self.writer = writer
        self._open_stream = open_stream or open_completion_stream

    def prepare(self, text: str) -> Tuple[Settings, List[Turn]]:
        settings = extract_settings(text)
        body = strip_front_matter(text)
        if not body:
            raise EmptyDocumentError("No text provided after front matter.")
        return settings, parse_transcript(body, settings)

    async def handle_complete(self, text: str) -> None:
        settings, turns = self.prepare(text)
        logger.debug(f"Transcript ready: model={settings.model} turns={len(turns)}")

        # connect before writing anything, so connect-phase failures leave no output
        stream = await self._open_stream(turns, settings.model)
        try:
            self.writer.write(settings.assistant_opening)
            async for fragment in stream:
                self.writer.write(fragment)
        finally:
            await stream.aclose()

        self.writer.write(settings.user_opening)

    async def handle_line(self, line: Union[str, bytes]) -> Optional[int]:
        """
        Returns an exit status when the run must stop, None to keep reading.
        Raw byte lines are decoded here so a bad line only abandons itself.
        """
        try:
            line = decode_line(line)
            if not line.strip():
                return None

            request = parse_request(line)

            if request.method != COMPLETE_METHOD:
                raise UnsupportedMethodError(f"Unsupported method: {request.method}")

            logger.debug(f"complete request ({len(request.params.text)} chars)")
            await self.handle_complete(request.params.text)
            return EXIT_SUCCESS

        except UnsupportedMethodError as e:
            logger.error(str(e))
            return EXIT_FAILURE
        except MdChatError as e:
            logger.error(f"{type(e).__name__}: {e}")
            return None
        except Exception as e:
            logger.error(f"Error generating chat completion: {e}")
            traceback.print_exc()
            return None

    async def run(self, lines: AsyncIterable[Union[str, bytes]]) -> int:
        async for line in lines:
            status = await self.handle_line(line)
            if status is not None:
                return status
        logger.info("Input closed without a completed request")
        return EXIT_SUCCESS
