from __future__ import annotations

import codecs
from urllib.parse import unquote_to_bytes

PERCENT = b"%"
PLUS = b"+"
SPACE = b" "


class PercentDecoder:
    """Incrementally decodes a single component of an urlencoded form.

    Raw bytes are written in as they arrive.  A ``+`` becomes a space, a
    ``%XX`` escape becomes the byte it names, and the resulting bytes are run
    through an incremental decoder for the configured charset.  Nothing here
    ever raises on bad input: an escape that isn't followed by two hex digits
    is passed through literally, and undecodable bytes become U+FFFD.

    Since an escape can be split over two writes, a trailing ``%`` or ``%X``
    is held back in the cache until the next write (or :meth:`finalize`).

    :param encoding: The charset that escaped bytes are decoded with.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self.cache = b""
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._parts: list[str] = []
        self.length = 0

    def write(self, data: bytes) -> int:
        # Prepend any cache info to our data.
        if len(self.cache) > 0:
            data = self.cache + data

        # The longest escape is 3 bytes, so only the last two bytes can hold
        # the start of an incomplete one.
        pct = data.rfind(PERCENT, max(len(data) - 2, 0))
        if pct != -1:
            enc, self.cache = data[:pct], data[pct:]
        else:
            enc, self.cache = data, b""

        if len(enc) > 0:
            self._decode(enc, final=False)

        return len(data)

    def _decode(self, data: bytes, final: bool) -> None:
        text = self._decoder.decode(unquote_to_bytes(data.replace(PLUS, SPACE)), final=final)
        if text:
            self._parts.append(text)
            self.length += len(text)

    def finalize(self) -> str:
        """Flush anything cached and return the decoded component.  The
        decoder is reset afterwards, so it can be reused for the next one.
        """
        self._decode(self.cache, final=True)
        value = "".join(self._parts)
        self.reset()
        return value

    def reset(self) -> None:
        self.cache = b""
        self._decoder.reset()
        self._parts = []
        self.length = 0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(encoding={self.encoding!r})"
