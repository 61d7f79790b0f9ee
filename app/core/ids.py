import secrets
import time


def gen_id(prefix: str) -> str:
    # epoch milliseconds lead, so ids of one prefix sort by creation time
    return f"{prefix}_{time.time_ns() // 1_000_000:012x}{secrets.token_hex(10)}"
