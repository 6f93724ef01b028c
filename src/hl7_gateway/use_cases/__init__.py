from .send_oru import SendORUMessagePipeline, SendORUResult

__all__ = ["SendORUMessagePipeline", "SendORUResult"]
