# stream_main.py
"""
Markdown chat streamer (stdin -> stdout)

Reads NDJSON requests from stdin, one per line:

    {"method": "complete", "params": {"text": "<markdown>"}}

The markdown may open with TOML (+++) or YAML (---) front matter choosing the
delimiters and the model. The document is split into user / assistant /
system turns, sent to the model, and the answer is streamed to stdout as
{"chunk": "..."} lines framed by the assistant and user delimiters.

Environment
-----------
  XAI_API_KEY       credential for grok-* models
  OPENAI_API_KEY    credential for every other model
  MDCHAT_LOG_LEVEL  logging level for stderr diagnostics (default INFO)

The process exits 0 after the first completed request, 1 on an unsupported
method.
"""

import os
import sys
import asyncio
import logging
from typing import AsyncIterator, Optional, TextIO, Union

from dotenv import load_dotenv

load_dotenv()

from mdchat.request_loop import ChunkWriter, RequestLoop


logger = logging.getLogger("mdchat_stream")


def configure_logging() -> None:
    level_name = os.getenv("MDCHAT_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
        stream=sys.stderr,
    )


async def stdin_lines(stream: Optional[TextIO] = None) -> AsyncIterator[Union[str, bytes]]:
    stream = stream or sys.stdin
    # raw bytes when available; decoding happens per line in the request loop
    source = getattr(stream, "buffer", stream)
    while True:
        line = await asyncio.to_thread(source.readline)
        if not line:  # EOF
            return
        yield line


async def main(stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> int:
    loop = RequestLoop(ChunkWriter(stdout or sys.stdout))
    return await loop.run(stdin_lines(stdin))


def run() -> None:
    configure_logging()
    try:
        status = asyncio.run(main())
    except KeyboardInterrupt:
        status = 130
    logger.debug("Exiting with status %d", status)
    sys.exit(status)


if __name__ == "__main__":
    run()
