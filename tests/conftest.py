"""Test data generator for emotikairos.

Builds a synthetic EmotiBit raw data log: sensor packets on a regular
device-clock grid, an RD/TL/AK clock exchange every few seconds whose
embedded host timestamps follow a known (slightly drifting) host clock,
and a handful of malformed records that must be rejected one by one.
"""

from datetime import datetime

import pytest


# -- Recording parameters ------------------------------------------------------

DEVICE_START_MS = 1000
DURATION_MS = 60_000
SYNC_INTERVAL_MS = 5_000
DATA_INTERVAL_MS = 250
HR_INTERVAL_MS = 1_000

# Host seconds elapsed per device second
DRIFT = 1.0001
# Host wall clock (local time) at DEVICE_START_MS
START_DT = datetime(2026, 1, 15, 14, 30, 0)

# Round trips (device ms) of successive clock exchanges
ROUND_TRIPS = [12, 30, 8, 25, 40, 9, 15, 22, 7, 33, 18, 11]
HR_VALUES = [60, 62, 64, 66, 68]

BAD_LINES = [
    "garbage",
    "1234,5,1,ZZ,1,100,1",
    "1500,6,2,PI,1,100,12,abc",
    "1600,7,4,TX,1,100,XX,1,YY,2",
]


def host_time(device_ms):
    """True host epoch seconds for a device timestamp."""
    return START_DT.timestamp() + (device_ms - DEVICE_START_MS) / 1000.0 * DRIFT


def host_text(epoch):
    """Embedded host timestamp text (``YYYY-MM-DD_HH-MM-SS-ffff``, local)."""
    dt = datetime.fromtimestamp(epoch)
    return dt.strftime("%Y-%m-%d_%H-%M-%S") + f"-{dt.microsecond // 100:04d}"


# -- Generator -----------------------------------------------------------------

def generate_raw_lines():
    """Return ``(lines, n_triples)`` for a synthetic recording.

    Records are ordered by device time; the malformed lines are inserted
    near the start.
    """
    events = []  # (device_ms, tag, payload)

    for d in range(DEVICE_START_MS, DEVICE_START_MS + DURATION_MS,
                   DATA_INTERVAL_MS):
        events.append((d, "PI", [str(150000 + d % 997), str(150100 + d % 991)]))
        events.append((d, "AX", [f"{(d % 7) * 0.125:.3f}", "-0.5"]))
        if (d - DEVICE_START_MS) % HR_INTERVAL_MS == 0:
            k = (d - DEVICE_START_MS) // HR_INTERVAL_MS
            events.append((d, "HR", [str(HR_VALUES[k % len(HR_VALUES)])]))

    n_triples = 0
    for k, d in enumerate(range(DEVICE_START_MS + 100,
                                DEVICE_START_MS + DURATION_MS,
                                SYNC_INTERVAL_MS)):
        rtt = ROUND_TRIPS[k % len(ROUND_TRIPS)]
        # The host replies halfway through the round trip
        sent = host_time(d + rtt / 2)
        events.append((d, "RD", ["TL", "LC"]))
        events.append((d + rtt, "TL", [host_text(sent)]))
        events.append((d + rtt + 2, "AK", [str(k), "RD"]))
        n_triples += 1

    events.sort(key=lambda e: e[0])

    lines = []
    for seq, (d, tag, payload) in enumerate(events):
        fields = [str(d), str(seq), str(len(payload)), tag, "1", "100"] + payload
        lines.append(",".join(fields))

    lines[3:3] = BAD_LINES
    lines.insert(10, "2000,8,4,TX,1,100,LC,1.5,LM,2.5")
    return lines, n_triples


# -- Fixtures ------------------------------------------------------------------

@pytest.fixture
def raw_data_file(tmp_path):
    """Write the synthetic recording to ``tmp_path/raw_data.csv``.

    Returns a metadata dict describing what the file contains.
    """
    lines, n_triples = generate_raw_lines()
    path = tmp_path / "raw_data.csv"
    path.write_text("\n".join(lines) + "\n")
    return {
        "path": path,
        "lines": lines,
        "n_records": len(lines),
        "n_bad": len(BAD_LINES),
        "n_triples": n_triples,
    }
