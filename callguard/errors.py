"""
callguard/errors.py
Exception types raised by the store, the orchestrator and the config layer.
Classifier failures are never raised past the orchestrator.
"""


class CallGuardError(Exception):
    """Base class for all CallGuard errors."""


class UnknownSessionError(CallGuardError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class UnknownConversationError(CallGuardError, LookupError):
    def __init__(self, conversation_id: str):
        super().__init__(f"Unknown conversation: {conversation_id}")
        self.conversation_id = conversation_id


class ConfigError(CallGuardError, ValueError):
    pass
