from __future__ import annotations

import os
import sys
from typing import BinaryIO, Optional

import orjson


def format_line(url: str, *, json_output: bool = False) -> bytes:
    if json_output:
        return orjson.dumps({'url': url}) + b"\n"
    return url.encode('utf-8') + b"\n"


class UrlWriter:
    def __init__(self, path: Optional[str] = None, *, json_output: bool = False, stream: Optional[BinaryIO] = None):
        self.json_output = json_output
        self.count = 0
        self._owned = False
        if stream is not None:
            self._f = stream
        elif path:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            self._f = open(path, 'wb')
            self._owned = True
        else:
            self._f = sys.stdout.buffer

    def write(self, url: str) -> None:
        self._f.write(format_line(url, json_output=self.json_output))
        self.count += 1

    def close(self) -> None:
        self._f.flush()
        if self._owned:
            self._f.close()

    def __enter__(self) -> 'UrlWriter':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
