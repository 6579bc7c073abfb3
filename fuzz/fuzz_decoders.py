import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from python_formreader.decoders import PercentDecoder


def fuzz_percent_decoder(fdp: EnhancedDataProvider) -> None:
    data = fdp.ConsumeRandomBytes()
    split = fdp.ConsumeIntInRange(0, len(data))

    whole = PercentDecoder()
    whole.write(data)

    pieces = PercentDecoder()
    pieces.write(data[:split])
    pieces.write(data[split:])

    # Decoding must not depend on where the data was split.
    assert whole.finalize() == pieces.finalize()


def TestOneInput(data: bytes) -> None:
    fuzz_percent_decoder(EnhancedDataProvider(data))


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
