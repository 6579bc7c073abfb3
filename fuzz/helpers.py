import atheris


class EnhancedDataProvider(atheris.FuzzedDataProvider):
    def ConsumeRandomBytes(self) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeLimitConfig(self) -> dict:
        return {
            "KEY_COUNT_LIMIT": self.ConsumeIntInRange(0, 64),
            "KEY_LENGTH_LIMIT": self.ConsumeIntInRange(0, 256),
            "VALUE_LENGTH_LIMIT": self.ConsumeIntInRange(0, 1024),
        }
