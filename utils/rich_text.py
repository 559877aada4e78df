"""
Rich-text reconstruction for comment bodies.

Comment content arrives as one flat string plus "command runs": offset /
length overlays marking links, mentions and timestamps. Offsets count
UTF-16 code units (what the web client measures), not Python code points,
so the scan works on the UTF-16 encoding of the text.

The command semantics are dropped; only the literal text is kept. Line
breaks become their own segments so callers can tell structure from content.
"""

from dataclasses import dataclass

from scrapers.errors import MalformedResponse

LINE_BREAKS = ("\r\n", "\n")

_ENCODING = "utf-16-le"
_UNIT = 2
_LF = "\n".encode(_ENCODING)
_CR = "\r".encode(_ENCODING)


@dataclass(frozen=True)
class CommandRun:
    start_index: int
    length: int

    @property
    def end_index(self) -> int:
        return self.start_index + self.length


def utf16_length(text: str) -> int:
    return len(text.encode(_ENCODING, "surrogatepass")) // _UNIT


def is_line_break(segment: str) -> bool:
    return segment in LINE_BREAKS


def _validate_runs(runs: list[CommandRun], total_units: int) -> None:
    previous = None
    for i, run in enumerate(runs):
        if run.length < 0:
            raise MalformedResponse(
                f"commandRuns[{i}].length",
                f"Command run {i} has negative length {run.length}",
            )
        if run.start_index >= 0 and run.end_index > total_units:
            raise MalformedResponse(
                f"commandRuns[{i}]",
                f"Command run {i} ({run.start_index}+{run.length}) "
                f"extends past the end of the text ({total_units} units)",
            )
        if previous is not None and run.start_index >= previous.start_index:
            if run.start_index < previous.end_index:
                raise MalformedResponse(
                    f"commandRuns[{i}]",
                    f"Command run {i} at {run.start_index} overlaps the run "
                    f"at {previous.start_index}+{previous.length}",
                )
        # Out-of-order runs are stale, they never become the reference run.
        if previous is None or run.start_index >= previous.start_index:
            previous = run


def reconstruct(text: str, runs=()) -> list[str]:
    """Split ``text`` into literal segments and line-break segments.

    Each run is appended whole to the current segment, even when it holds
    a line break. Runs starting behind the scan position are discarded.
    ``"".join(result) == text`` always holds.
    """
    runs = list(runs)
    units = text.encode(_ENCODING, "surrogatepass")
    total = len(units) // _UNIT
    _validate_runs(runs, total)

    segments: list[str] = []
    current = bytearray()

    def close_segment():
        if current:
            segments.append(current.decode(_ENCODING, "surrogatepass"))
            current.clear()

    pos = 0
    cursor = 0
    while pos < total:
        unit = units[pos * _UNIT:(pos + 1) * _UNIT]
        if unit == _LF:
            close_segment()
            segments.append("\n")
            pos += 1
            continue
        if unit == _CR and units[(pos + 1) * _UNIT:(pos + 2) * _UNIT] == _LF:
            close_segment()
            segments.append("\r\n")
            pos += 2
            continue

        # Drop stale runs and empty runs sitting at the scan position
        while cursor < len(runs) and (
            runs[cursor].start_index < pos
            or (runs[cursor].start_index == pos and runs[cursor].length == 0)
        ):
            cursor += 1

        if cursor < len(runs) and runs[cursor].start_index == pos:
            run = runs[cursor]
            current += units[pos * _UNIT:run.end_index * _UNIT]
            pos = run.end_index
            cursor += 1
            continue

        current += unit
        pos += 1

    close_segment()
    return segments


def runs_from_text_runs(text_runs) -> tuple[str, list[CommandRun]]:
    """Flatten renderer ``runs`` ([{"text": ..., "navigationEndpoint": ...}])
    into one string plus command runs for the linked pieces."""
    parts = []
    command_runs = []
    offset = 0
    for run in text_runs:
        if not isinstance(run, dict):
            continue
        piece = run.get("text")
        if not isinstance(piece, str):
            continue
        width = utf16_length(piece)
        if width and "navigationEndpoint" in run:
            command_runs.append(CommandRun(offset, width))
        parts.append(piece)
        offset += width
    return "".join(parts), command_runs
