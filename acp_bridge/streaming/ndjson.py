# -*- coding: utf-8 -*-
"""
NDJSON 行解析工具
================

cursor-agent 以 NDJSON (Newline Delimited JSON) 输出事件，每行一个 JSON 对象：

{"type":"assistant","message":{"role":"assistant","content":[{"type":"text","text":"Hi"}]},"timestamp_ms":1}
{"type":"tool_call","subtype":"started","call_id":"call_1","tool_call":{"readToolCall":{"args":{"path":"a.txt"}}}}
{"type":"result","subtype":"success","is_error":false}

Nothing in this module raises on bad input: a line that is not a JSON object
is reported as "no value" so a single corrupt line cannot end the stream.
"""

import codecs
import json
from typing import Any, Dict, Iterator, List, Optional, Union

from log import log

__all__ = [
    "ndjson_decode_line",
    "parse_ndjson_stream",
    "LineBuffer",
]


def ndjson_decode_line(line: str) -> Optional[Dict[str, Any]]:
    """
    解析 NDJSON 行。

    Args:
        line: 单行文本 (可带换行符/空白)

    Returns:
        JSON 对象；空行、数组、标量或解析失败时返回 None
    """
    trimmed = line.strip()
    if not trimmed:
        return None
    try:
        parsed = json.loads(trimmed)
    except ValueError:
        log.debug(f"Failed to parse NDJSON line: {trimmed[:100]}", tag="NDJSON")
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def parse_ndjson_stream(stream: str) -> Iterator[Dict[str, Any]]:
    """Yield every JSON object line of a complete NDJSON document."""
    for line in stream.split("\n"):
        parsed = ndjson_decode_line(line)
        if parsed is not None:
            yield parsed


class LineBuffer:
    """
    行缓冲器

    Reassembles complete lines from chunks that may split a line (or a
    multi-byte UTF-8 character) anywhere.

    使用示例：
        buffer = LineBuffer()
        for line in buffer.push(b'{"type":"ass'):
            ...
        for line in buffer.push(b'istant"}\\n'):
            ...
        for line in buffer.flush():
            ...
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def push(self, chunk: Union[bytes, str]) -> List[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        lines = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if line.strip():
                lines.append(line)
        return lines

    def flush(self) -> List[str]:
        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if remaining.strip():
            return [remaining]
        return []
