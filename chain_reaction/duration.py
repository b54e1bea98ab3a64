"""
Countdown decay.

Each play shortens the countdown by duration_decrease_ms, starting from the
duration chosen at start, until it reaches the min_duration floor. From then
on every join resets the countdown to exactly min_duration.
"""


def next_duration(state) -> int:
    """
    Countdown length (ms) set by the join being applied.

    `state.player_count` is the count before the join is applied, so the
    decay covers every play including this one.
    """
    decay = (state.player_count + 1) * state.duration_decrease_ms
    if state.duration_ms > decay:
        candidate = state.duration_ms - decay
    else:
        candidate = state.min_duration
    return max(candidate, state.min_duration)
