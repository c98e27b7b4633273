from __future__ import annotations

from chess_vision_trainer.geometry import Square
from chess_vision_trainer.speech import OfflineTtsSpeaker, RecordingAnnouncer, spoken_square


def test_spoken_square_spells_out_the_a_file() -> None:
    assert spoken_square(Square.parse("a3")) == "ae 3"
    assert spoken_square(Square.parse("b5")) == "b 5"
    assert spoken_square(Square.parse("h8")) == "h 8"


def test_recording_announcer_keeps_phrases_in_order() -> None:
    announcer = RecordingAnnouncer()
    announcer.speak("knight d 4")
    announcer.speak("e 6")
    assert announcer.phrases == ["knight d 4", "e 6"]


def test_speaker_is_silent_when_disabled() -> None:
    speaker = OfflineTtsSpeaker(environ={"CVT_DISABLE_TTS": "1"})
    assert speaker.enabled is False
    speaker.speak("e 6")
    speaker.update()
    assert speaker.pending_count == 0
    speaker.stop()


def test_speaker_is_silent_with_dummy_audio_driver() -> None:
    speaker = OfflineTtsSpeaker(environ={"SDL_AUDIODRIVER": "dummy"})
    assert speaker.enabled is False
    speaker.speak("knight ae 3")
    assert speaker.pending_count == 0
