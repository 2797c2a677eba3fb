"""
Keystroke tick playback through pygame's mixer.

The mixer is started on first use. Missing audio devices or unreadable sound
files simply leave the terminal silent.
"""

import array
import math
import os

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

import pygame


class KeystrokeAudio:
    def __init__(self, config=None, logger=None):
        config = config or {}
        self.sound_path = config.get("keystroke")
        self.frequency = float(config.get("frequency", 480))
        self.duration = float(config.get("duration", 0.03))
        self.volume = float(config.get("volume", 0.08))
        self.logger = logger or _NullLogger()
        self._sound = None
        self._initialized = False

    @property
    def available(self):
        return self._ensure_mixer()

    def _ensure_mixer(self):
        if self._initialized:
            return self._sound is not None
        self._initialized = True
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(44100, -16, 1, 512)
            self._sound = self._load_sound()
        except pygame.error as exc:
            self.logger.log("audio_unavailable", reason=str(exc))
            self._sound = None
        return self._sound is not None

    def _load_sound(self):
        if self.sound_path and os.path.exists(self.sound_path):
            try:
                return pygame.mixer.Sound(self.sound_path)
            except pygame.error as exc:
                self.logger.log("audio_file_unusable", path=self.sound_path, reason=str(exc))
        return self._make_tone(self.frequency, self.duration, self.volume)

    def _make_tone(self, freq, duration, volume):
        sample_rate, _, channels = pygame.mixer.get_init()
        sample_count = int(sample_rate * duration)
        amplitude = int(32_000 * volume)
        buffer = array.array("h")
        for i in range(sample_count):
            theta = 2 * math.pi * freq * i / sample_rate
            sample = int(amplitude * math.sin(theta))
            for _ in range(channels):
                buffer.append(sample)
        return pygame.mixer.Sound(buffer=buffer.tobytes())

    def play(self):
        if not self._ensure_mixer():
            return
        try:
            self._sound.play()
        except pygame.error:
            pass


class KeystrokeCue:
    """Plays the tick only while the sound preference is on."""

    def __init__(self, audio, is_enabled):
        self.audio = audio
        self.is_enabled = is_enabled

    def play(self):
        if not self.is_enabled():
            return
        self.audio.play()


class _NullLogger:
    def log(self, *args, **kwargs) -> None:
        return
