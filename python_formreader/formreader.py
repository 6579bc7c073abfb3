from __future__ import annotations

import logging
from collections import deque
from enum import IntEnum
from io import BytesIO
from numbers import Number
from typing import TYPE_CHECKING, NamedTuple, cast

from .decoders import PercentDecoder
from .exceptions import LimitExceededError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable
    from typing import Any, Literal, Protocol, TypeAlias, TypedDict

    class SupportsRead(Protocol):
        def read(self, __n: int) -> bytes: ...

    class SupportsAsyncRead(Protocol):
        def read(self, __n: int) -> Awaitable[bytes]: ...

    class PairCallbacks(TypedDict, total=False):
        on_field_start: Callable[[], None]
        on_field_name: Callable[[bytes, int, int], None]
        on_field_data: Callable[[bytes, int, int], None]
        on_field_end: Callable[[], None]
        on_end: Callable[[], None]

    class FormReaderConfig(TypedDict):
        KEY_COUNT_LIMIT: int | float
        KEY_LENGTH_LIMIT: int | float
        VALUE_LENGTH_LIMIT: int | float
        ENCODING: str

    CallbackName: TypeAlias = Literal["field_start", "field_name", "field_data", "field_end", "end"]


class PairState(IntEnum):
    """Pair parser states.

    These states represent the possible states of a parser that is splitting
    an urlencoded form body into fields.
    """

    #: Before a field; any ampersands found here are skipped.
    BEFORE_FIELD = 0

    #: Inside the name of a field, up to the first equals sign.
    FIELD_NAME = 1

    #: Inside the value of a field, up to the next ampersand.
    FIELD_DATA = 2


AMPERSAND = b"&"[0]

# Default number of bytes requested from the source per read.
DEFAULT_CHUNK_SIZE = 8192

KEY_COUNT_LIMIT_MESSAGE = "Form key count limit {} exceeded."
LENGTH_LIMIT_MESSAGE = "Form key or value length limit {} exceeded."


class FormPair(NamedTuple):
    """One decoded field from the form body."""

    key: str
    value: str


class BaseParser:
    """This class is the base class for all parsers.  It contains the logic for
    calling and adding callbacks.

    A callback can be one of two different forms.  "Notification callbacks" are
    callbacks that are called when something happens - for example, when a new
    field is started.  They are called with no arguments.  "Data callbacks" are
    called with three arguments: a buffer, a start index, and an end index.
    The data to process is ``data[start:end]``.  Data callbacks with an empty
    range are never called.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self.callbacks: PairCallbacks = {}

    def callback(
        self, name: CallbackName, data: bytes | None = None, start: int | None = None, end: int | None = None
    ) -> None:
        """This function calls a provided callback with some data.  If the
        callback is not set, will do nothing.

        :param name: The name of the callback to call (as a string).
        :param data: Data to pass to the callback.  If None, then it is
                     assumed that the callback is a notification callback,
                     and no parameters are given.
        :param start: An integer that is passed to the data callback.
        :param end: An integer that is passed to the data callback.
        """
        on_name = "on_" + name
        func = self.callbacks.get(on_name)
        if func is None:
            return
        func = cast("Callable[..., Any]", func)
        if data is not None:
            if start is not None and start == end:
                return

            self.logger.debug("Calling %s with data[%d:%d]", on_name, start, end)
            func(data, start, end)
        else:
            self.logger.debug("Calling %s with no data", on_name)
            func()

    def set_callback(self, name: CallbackName, new_func: Callable[..., Any] | None) -> None:
        """Update the function for a callback.  Removes from the callbacks dict
        if new_func is None.
        """
        if new_func is None:
            self.callbacks.pop("on_" + name, None)  # type: ignore[misc]
        else:
            self.callbacks["on_" + name] = new_func  # type: ignore[literal-required]

    def finalize(self) -> None:
        pass  # pragma: no cover

    def __repr__(self) -> str:
        return "%s()" % self.__class__.__name__


class PairParser(BaseParser):
    """This is a streaming parser that splits an urlencoded form body into
    raw (still escaped) field names and values.  It does no decoding of its
    own.

    Data is pushed in with :meth:`write`, in chunks of any size; a chunk
    boundary may fall anywhere, including in the middle of a name or value,
    which is why names and values are delivered in pieces.

    ============== ================= =======================================
    Callback Name  Parameters        Description
    ============== ================= =======================================
    on_field_start None              Called when a new field is encountered.
    on_field_name  data, start, end  Called with a piece of the field name.
    on_field_data  data, start, end  Called with a piece of the field value.
    on_field_end   None              Called when the end of a field is found.
    on_end         None              Called when the parser is finished.
    ============== ================= =======================================

    A field with no equals sign (e.g. ``foo&bar=1``) has a name and no data.

    :param callbacks: A dictionary of callbacks.  See the documentation for
                      :class:`BaseParser`.
    """

    state: PairState

    def __init__(self, callbacks: PairCallbacks = {}) -> None:
        super().__init__()
        self.state = PairState.BEFORE_FIELD
        self.callbacks = callbacks

    def write(self, data: bytes) -> int:
        """Write some data to the parser, which will parse it into fields and
        call the appropriate callbacks.

        :param data: A bytestring of data to write to the parser.
        :return: The number of bytes processed.
        """
        state = self.state
        length = len(data)

        i = 0
        while i < length:
            ch = data[i]

            if state == PairState.BEFORE_FIELD:
                # Ampersands between fields, including empty runs of them,
                # are skipped here.
                if ch != AMPERSAND:
                    self.callback("field_start")
                    i -= 1
                    state = PairState.FIELD_NAME

            elif state == PairState.FIELD_NAME:
                # Only look for an equals sign before the next separator.
                sep_pos = data.find(b"&", i)
                if sep_pos != -1:
                    equals_pos = data.find(b"=", i, sep_pos)
                else:
                    equals_pos = data.find(b"=", i)

                if equals_pos != -1:
                    self.callback("field_name", data, i, equals_pos)

                    # i is incremented below, so the next iteration looks at
                    # the byte after the equals sign.
                    i = equals_pos
                    state = PairState.FIELD_DATA
                elif sep_pos != -1:
                    self.callback("field_name", data, i, sep_pos)
                    self.callback("field_end")
                    i = sep_pos - 1
                    state = PairState.BEFORE_FIELD
                else:
                    # The name continues past the end of this chunk.
                    self.callback("field_name", data, i, length)
                    i = length

            elif state == PairState.FIELD_DATA:
                sep_pos = data.find(b"&", i)
                if sep_pos != -1:
                    self.callback("field_data", data, i, sep_pos)
                    self.callback("field_end")

                    # Back up one, so the BEFORE_FIELD state consumes the
                    # separator.
                    i = sep_pos - 1
                    state = PairState.BEFORE_FIELD
                else:
                    self.callback("field_data", data, i, length)
                    i = length

            else:  # pragma: no cover (error case)
                raise AssertionError("Reached an unknown state %d at %d" % (state, i))

            i += 1

        self.state = state
        return length

    def finalize(self) -> None:
        """Finalize this parser, which signals that we are finished parsing.
        A field that is still open is ended first.
        """
        if self.state != PairState.BEFORE_FIELD:
            self.callback("field_end")
            self.state = PairState.BEFORE_FIELD
        self.callback("end")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(state={self.state!r})"


class FormAccumulator:
    """Folds decoded fields into an ordered mapping of key to values.

    Keys keep the order in which they were first seen, and each key's values
    keep the order in which they were appended.
    """

    def __init__(self) -> None:
        self._results: dict[str, list[str]] = {}
        self.value_count = 0

    def append(self, key: str, value: str) -> None:
        values = self._results.get(key)
        if values is None:
            self._results[key] = [value]
        else:
            values.append(value)
        self.value_count += 1

    @property
    def key_count(self) -> int:
        return len(self._results)

    @property
    def has_values(self) -> bool:
        return self.value_count > 0

    def get_results(self) -> dict[str, list[str]]:
        return self._results

    def __contains__(self, key: object) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(keys={self.key_count!r}, values={self.value_count!r})"


def _check_limit(name: str, value: Any) -> int | float:
    if isinstance(value, bool) or not isinstance(value, Number) or value < 0:
        raise ValueError(f"{name} must be a non-negative number, not {value!r}")
    return cast("int | float", value)


class BaseFormReader:
    """Shared state and limit checks for the form readers.

    The reader pulls bytes from its stream ``chunk_size`` at a time and pushes
    them through a :class:`PairParser`.  Names and values are decoded as they
    arrive, so a field that crosses its length limit is rejected without
    buffering the whole of it.  Subclasses only decide how the stream is read.

    The limits are plain attributes and may be changed after the reader is
    created, as long as nothing has been read yet.  The default for each is
    unbounded.

    :param stream: The source the form body is read from.
    :param config: Configuration overrides, see :attr:`DEFAULT_CONFIG`.
    :param chunk_size: The number of bytes requested from the stream per read.
    """

    #: This is the default configuration for our form reader.  Limits are
    #: counted in decoded characters.
    DEFAULT_CONFIG: FormReaderConfig = {
        "KEY_COUNT_LIMIT": float("inf"),
        "KEY_LENGTH_LIMIT": float("inf"),
        "VALUE_LENGTH_LIMIT": float("inf"),
        "ENCODING": "utf-8",
    }

    def __init__(self, stream: Any, config: dict[Any, Any] = {}, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.logger = logging.getLogger(__name__)

        self.config: FormReaderConfig = self.DEFAULT_CONFIG.copy()
        self.config.update(config)  # type: ignore[typeddict-item]

        self.key_count_limit = _check_limit("KEY_COUNT_LIMIT", self.config["KEY_COUNT_LIMIT"])
        self.key_length_limit = _check_limit("KEY_LENGTH_LIMIT", self.config["KEY_LENGTH_LIMIT"])
        self.value_length_limit = _check_limit("VALUE_LENGTH_LIMIT", self.config["VALUE_LENGTH_LIMIT"])

        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValueError("chunk_size must be a positive integer, not %r" % (chunk_size,))
        self.chunk_size = chunk_size

        self.stream = stream
        self.bytes_read = 0

        self._key = PercentDecoder(self.config["ENCODING"])
        self._value = PercentDecoder(self.config["ENCODING"])
        self._pending: deque[FormPair] = deque()
        self._error: LimitExceededError | None = None
        self._end_of_stream = False

        self.parser = PairParser(
            callbacks={
                "on_field_name": self._on_field_name,
                "on_field_data": self._on_field_data,
                "on_field_end": self._on_field_end,
            }
        )

    def _on_field_name(self, data: bytes, start: int, end: int) -> None:
        self._key.write(data[start:end])
        self._check_length(self._key.length, self.key_length_limit)

    def _on_field_data(self, data: bytes, start: int, end: int) -> None:
        self._value.write(data[start:end])
        self._check_length(self._value.length, self.value_length_limit)

    def _on_field_end(self) -> None:
        key = self._key.finalize()
        value = self._value.finalize()
        self._check_length(len(key), self.key_length_limit)
        self._check_length(len(value), self.value_length_limit)

        if not key and not value:
            self.logger.debug("Skipping empty form field")
            return

        self._pending.append(FormPair(key, value))

    def _check_length(self, length: int, limit: int | float) -> None:
        if length > limit:
            msg = LENGTH_LIMIT_MESSAGE.format(limit)
            self.logger.warning(msg)
            raise LimitExceededError(msg, limit)

    def _feed(self, data: bytes) -> None:
        """Push one chunk from the stream into the parser.  An empty chunk
        means the stream is exhausted.
        """
        try:
            if data:
                self.logger.debug("Read %d bytes from stream", len(data))
                self.bytes_read += len(data)
                self.parser.write(data)
            else:
                self._end_of_stream = True
                self.parser.finalize()
        except LimitExceededError as e:
            # Fields completed before the violation are still handed out
            # first; the error is raised once they are drained.
            self._error = e

    def _needs_data(self) -> bool:
        return not self._pending and self._error is None and not self._end_of_stream

    def _next_pair(self) -> FormPair | None:
        if self._pending:
            return self._pending.popleft()
        if self._error is not None:
            raise self._error
        return None

    def _accumulate(self, accumulator: FormAccumulator, pair: FormPair) -> None:
        # Only a new key counts towards the limit.
        if pair.key not in accumulator and accumulator.key_count >= self.key_count_limit:
            msg = KEY_COUNT_LIMIT_MESSAGE.format(self.key_count_limit)
            self.logger.warning(msg)
            raise LimitExceededError(msg, self.key_count_limit)
        accumulator.append(pair.key, pair.value)

    def __repr__(self) -> str:
        return "{}(key_count_limit={!r}, key_length_limit={!r}, value_length_limit={!r})".format(
            self.__class__.__name__, self.key_count_limit, self.key_length_limit, self.value_length_limit
        )


class FormReader(BaseFormReader):
    """Reads an ``application/x-www-form-urlencoded`` body from a blocking
    stream.

    The stream may be anything with a ``read(n)`` method - seekable or not,
    returning full or short reads - and is never seeked or closed by the
    reader.  As a convenience, a ``bytes`` or ``str`` body may be passed
    directly.

    .. code-block:: python

        reader = FormReader(request.stream, config={"KEY_COUNT_LIMIT": 1024})
        form = reader.read_form()
    """

    def __init__(
        self,
        stream: SupportsRead | bytes | str,
        config: dict[Any, Any] = {},
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        super().__init__(stream, config=config, chunk_size=chunk_size)

        if isinstance(stream, str):
            stream = stream.encode(self.config["ENCODING"])
        if isinstance(stream, (bytes, bytearray, memoryview)):
            self.stream = BytesIO(stream)

    def read_next_pair(self) -> FormPair | None:
        """Read the next decoded field from the stream.

        :return: The next :class:`FormPair`, or None once the stream is
                 exhausted.  Every later call returns None again.
        :raises LimitExceededError: If the field crosses a length limit.
        """
        while self._needs_data():
            self._feed(self.stream.read(self.chunk_size))
        return self._next_pair()

    def read_form(self) -> dict[str, list[str]]:
        """Read the remaining fields and fold them into an ordered mapping of
        key to values.

        :raises LimitExceededError: If any limit is crossed.  Nothing read so
                                    far is returned in that case.
        """
        accumulator = FormAccumulator()
        while (pair := self.read_next_pair()) is not None:
            self._accumulate(accumulator, pair)
        return accumulator.get_results()


class AsyncFormReader(BaseFormReader):
    """The asynchronous counterpart of :class:`FormReader`.  The stream's
    ``read(n)`` must be a coroutine; it is the only point where the reader
    suspends.
    """

    def __init__(
        self, stream: SupportsAsyncRead, config: dict[Any, Any] = {}, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> None:
        super().__init__(stream, config=config, chunk_size=chunk_size)

    async def read_next_pair(self) -> FormPair | None:
        while self._needs_data():
            self._feed(await self.stream.read(self.chunk_size))
        return self._next_pair()

    async def read_form(self) -> dict[str, list[str]]:
        accumulator = FormAccumulator()
        while (pair := await self.read_next_pair()) is not None:
            self._accumulate(accumulator, pair)
        return accumulator.get_results()


def read_form(
    stream: SupportsRead | bytes | str, config: dict[Any, Any] = {}, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> dict[str, list[str]]:
    """This function is useful if you just want to read a whole form body
    into a mapping and don't need the reader itself.

    :param stream: A stream, or the body itself as bytes or str.
    :param config: Configuration for the reader, see
                   :attr:`BaseFormReader.DEFAULT_CONFIG`.
    :param chunk_size: The maximum number of bytes to read from the stream at
                       a time.
    """
    return FormReader(stream, config=config, chunk_size=chunk_size).read_form()


async def read_form_async(
    stream: SupportsAsyncRead, config: dict[Any, Any] = {}, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> dict[str, list[str]]:
    return await AsyncFormReader(stream, config=config, chunk_size=chunk_size).read_form()
