import numpy as np


def swap16(payload: bytes) -> bytes:
    """Swap every adjacent byte pair (big-endian PCM16 to little-endian)."""
    if len(payload) % 2:
        raise ValueError(f"swap16 requires an even byte length, got {len(payload)}")
    if not payload:
        return b""
    return np.frombuffer(payload, dtype=np.uint16).byteswap().tobytes()


def payload_duration_ms(
    byte_length: int, sample_rate: int, bytes_per_sample: int
) -> float:
    """Return payload duration in milliseconds for a mono stream."""
    if sample_rate <= 0 or bytes_per_sample <= 0:
        return 0.0
    samples = byte_length / float(bytes_per_sample)
    return samples * 1000.0 / float(sample_rate)
