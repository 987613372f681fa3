from typing import Optional


class SessionClock:
    """One-second countdown driven by explicit ``tick`` events.

    The clock never sleeps; a runtime worker (or a test) calls ``tick`` once
    per second. ``generation`` changes on every start/reset/cancel so a
    worker scheduled for an earlier countdown can tell it has gone stale.
    """

    def __init__(self, duration: int = 0):
        self.duration = int(duration)
        self.remaining = int(duration)
        self.running = False
        self.suspended = False
        self.expired = False
        self.generation = 0

    def start(self, duration: Optional[int] = None) -> int:
        if duration is not None:
            self.duration = int(duration)
        self.remaining = self.duration
        self.running = self.remaining > 0
        self.suspended = False
        self.expired = False
        self.generation += 1
        return self.generation

    def reset(self, duration: Optional[int] = None) -> int:
        """Cancel any running countdown and start again."""
        return self.start(duration)

    def cancel(self) -> None:
        """Stop ticking without firing expiry."""
        if self.running:
            self.generation += 1
        self.running = False
        self.suspended = False

    def suspend(self) -> None:
        self.suspended = True

    def resume(self) -> None:
        self.suspended = False

    @property
    def active(self) -> bool:
        return self.running and not self.suspended

    def tick(self) -> bool:
        """Advance one second. Returns True only on the tick that expires."""
        if not self.active:
            return False
        self.remaining = max(0, self.remaining - 1)
        if self.remaining == 0:
            self.running = False
            self.expired = True
            return True
        return False

    def to_dict(self):
        return {
            'duration': self.duration,
            'remaining': self.remaining,
            'running': self.running,
            'suspended': self.suspended,
            'expired': self.expired,
        }
