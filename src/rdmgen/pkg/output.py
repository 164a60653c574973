from __future__ import annotations

# Four-channel text accumulator for generated code.

from dataclasses import dataclass, field

CHANNELS = ("header", "task", "subtask", "footer")


@dataclass
class OutStream:
    header: list = field(default_factory=list)
    task: list = field(default_factory=list)
    subtask: list = field(default_factory=list)
    footer: list = field(default_factory=list)

    def append(self, channel, text):
        if channel not in CHANNELS:
            raise ValueError(f"Unknown output channel '{channel}'.")
        getattr(self, channel).append(text)
        return self

    def merge(self, other):
        for channel in CHANNELS:
            getattr(self, channel).extend(getattr(other, channel))
        return self

    def copy(self):
        return OutStream(*(list(getattr(self, channel)) for channel in CHANNELS))

    def channel(self, name):
        return "".join(getattr(self, name))

    def str(self):
        return "".join(self.channel(channel) for channel in CHANNELS)

    def __str__(self):
        return self.str()
