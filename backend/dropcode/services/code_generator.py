from __future__ import annotations

import secrets
from typing import Protocol

from dropcode.core.errors import CodeSpaceExhausted

CODE_LENGTH = 6
_CODE_SPACE = 10 ** CODE_LENGTH


class CodeIndex(Protocol):
    def is_code_live(self, code: str) -> bool:
        ...


def generate_code() -> str:
    """均匀随机的 6 位数字取件码（000000-999999，保留前导零）"""
    return f"{secrets.randbelow(_CODE_SPACE):0{CODE_LENGTH}d}"


def is_valid_code(code: str | None) -> bool:
    return bool(code) and len(code) == CODE_LENGTH and code.isascii() and code.isdigit()


class CodeGenerator:
    def __init__(self, max_attempts: int = 1000):
        self.max_attempts = max(1, int(max_attempts))

    def generate(self) -> str:
        return generate_code()

    def allocate_unique_code(self, index: CodeIndex) -> str:
        """
        生成一个未被存活记录占用的取件码。

        仅做查重，不写索引；占用发生在 FileRecordStore.create。
        """
        for _ in range(self.max_attempts):
            code = self.generate()
            if not index.is_code_live(code):
                return code
        raise CodeSpaceExhausted()


__all__ = ["CODE_LENGTH", "CodeGenerator", "CodeIndex", "generate_code", "is_valid_code"]
