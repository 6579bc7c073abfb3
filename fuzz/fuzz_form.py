import io
import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from python_formreader.exceptions import FormReaderError
    from python_formreader.formreader import FormReader


def read_unlimited(fdp: EnhancedDataProvider) -> None:
    FormReader(io.BytesIO(fdp.ConsumeRandomBytes())).read_form()


def read_limited(fdp: EnhancedDataProvider) -> None:
    config = fdp.ConsumeLimitConfig()
    chunk_size = fdp.ConsumeIntInRange(1, 64)
    form = FormReader(io.BytesIO(fdp.ConsumeRandomBytes()), config=config, chunk_size=chunk_size).read_form()

    assert len(form) <= config["KEY_COUNT_LIMIT"]
    for key, values in form.items():
        assert len(key) <= config["KEY_LENGTH_LIMIT"]
        assert all(len(value) <= config["VALUE_LENGTH_LIMIT"] for value in values)


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    targets = [read_unlimited, read_limited]
    target = fdp.PickValueInList(targets)

    try:
        target(fdp)
    except FormReaderError:
        return


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
