from __future__ import annotations


def leading_zero_bits(digest: bytes) -> int:
    """Count leading zero bits of ``digest``, stopping at the first set bit."""
    count = 0
    for byte in digest:
        if byte == 0:
            count += 8
            continue
        # bit_length() of a non-zero byte is the position of its highest set bit
        count += 8 - byte.bit_length()
        break
    return count


def meets_difficulty(digest: bytes, difficulty: int) -> bool:
    if difficulty < 0:
        raise ValueError(f"difficulty must be non-negative, got {difficulty}")
    if difficulty == 0:
        return True
    return leading_zero_bits(digest) >= difficulty
