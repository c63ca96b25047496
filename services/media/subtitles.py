"""Subtitle cues with even word-distribution timing."""

from shared.models import SubtitleCue
from shared.utils import config, generate_srt_content

# No word-level timestamps are available from the speech providers, so cue timing is
# an estimate: a fixed speaking pace, compressed to fit the narration when needed.


def build_subtitle_cues(script: str, duration_seconds: float) -> list[SubtitleCue]:
    words_per_second = float(config.get_pipeline_value("subtitles.words_per_second", 2))
    seconds_per_cue = float(config.get_pipeline_value("subtitles.seconds_per_cue", 3))
    words_per_cue = max(1, int(words_per_second * seconds_per_cue))

    words = script.split()
    if not words or duration_seconds <= 0:
        return []

    groups = [words[i : i + words_per_cue] for i in range(0, len(words), words_per_cue)]
    cue_length = seconds_per_cue
    if len(groups) * seconds_per_cue > duration_seconds:
        cue_length = duration_seconds / len(groups)

    cues = []
    for index, group in enumerate(groups):
        start = index * cue_length
        end = min(start + cue_length, duration_seconds)
        cues.append(SubtitleCue(start_time=round(start, 3), end_time=round(end, 3), text=" ".join(group)))
    return cues


def cues_to_srt(cues: list[SubtitleCue]) -> str:
    return generate_srt_content([cue.model_dump() for cue in cues])
