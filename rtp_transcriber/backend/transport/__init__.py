"""UDP/RTP ingress."""

from .rtp_receiver import Frame, ReceiverHooks, RtpFrameReceiver

__all__ = ["Frame", "ReceiverHooks", "RtpFrameReceiver"]
