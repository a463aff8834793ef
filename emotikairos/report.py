"""Sync report PNG generation for a decoded EmotiBit recording.

Draws the handshake round trips across the recording (with quartile
boundaries and the chosen anchors) and the resulting device-to-host
mapping, so users can check visually that the sync map is sensible.

matplotlib is imported lazily; if not installed, report generation is
skipped with a warning. Decoding never depends on this module.
"""

import datetime as _dt
import logging

import numpy as np

from .sync import split_quartiles

logger = logging.getLogger(__name__)

# Guard matplotlib import, it remains an optional dependency
try:
    import matplotlib
    matplotlib.use("Agg")  # non-interactive backend for PNG output
    import matplotlib.pyplot as plt
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False


# -- Panel drawing helpers -----------------------------------------------------

def _draw_text_header(fig, triples, sync_map):
    """Draw summary statistics as text at the top of the figure."""
    lines = [
        f"Sync triples: {len(triples)}  |  samples used: {sync_map.samples_used}",
        f"Device span: {sync_map.device_time_min:.0f} .. "
        f"{sync_map.device_time_max:.0f} ms",
    ]
    for i, (te, tl) in enumerate(((sync_map.device_anchor_0, sync_map.host_anchor_0),
                                  (sync_map.device_anchor_1, sync_map.host_anchor_1))):
        try:
            host_str = _dt.datetime.fromtimestamp(tl).strftime(
                "%Y-%m-%d %H:%M:%S.%f")
        except (OSError, OverflowError, ValueError):
            host_str = f"{tl:.6f}"
        lines.append(f"Anchor {i}: device {te:.0f} ms -> host {host_str}")
    lines.append(f"Parser: {sync_map.format_version}")

    fig.text(
        0.05, 0.97, "\n".join(lines),
        fontsize=8, fontfamily="monospace",
        verticalalignment="top",
        bbox=dict(boxstyle="round,pad=0.4", facecolor="lightyellow",
                  edgecolor="gray", alpha=0.9),
    )


def _draw_round_trips(ax, triples, sync_map):
    """Panel 1: round trip of every triple, quartiles shaded, anchors marked."""
    if not triples:
        ax.text(0.5, 0.5, "No sync triples",
                ha="center", va="center", transform=ax.transAxes,
                fontsize=9, color="gray")
        ax.set_title("Handshake round trips", fontsize=9)
        return

    device = np.array([t.device_time_reply_received for t in triples]) / 1000.0
    rtt = np.array([t.round_trip for t in triples])
    ax.plot(device, rtt, marker=".", linewidth=0.5, color="steelblue")

    # Quartile boundaries
    for chunk in split_quartiles(triples)[1:]:
        if chunk:
            ax.axvline(chunk[0].device_time_reply_received / 1000.0,
                       color="gray", linestyle="--", linewidth=0.8)

    meta = sync_map.metadata or {}
    for t in meta.get("anchor_triples", ()):
        ax.plot(t.device_time_reply_received / 1000.0, t.round_trip,
                marker="o", markersize=8, color="red", fillstyle="none")

    ax.set_xlabel("Device time (s)", fontsize=8)
    ax.set_ylabel("Round trip (ms)", fontsize=8)
    ax.set_title("Handshake round trips (anchors circled)", fontsize=9)
    ax.tick_params(labelsize=7)


def _draw_mapping(ax, sync_map):
    """Panel 2: device-to-host mapping over the recording span."""
    device = np.linspace(sync_map.device_time_min, sync_map.device_time_max, 200)
    host = sync_map.device_to_host(device)
    origin = sync_map.host_anchor_0

    ax.plot(device / 1000.0, host - origin, linewidth=0.8, color="navy")
    ax.plot(
        [sync_map.device_anchor_0 / 1000.0, sync_map.device_anchor_1 / 1000.0],
        [0.0, sync_map.host_anchor_1 - origin],
        "o", color="red", label="anchors",
    )
    ax.set_xlabel("Device time (s)", fontsize=8)
    ax.set_ylabel("Host time - anchor 0 (s)", fontsize=8)
    ax.set_title(f"Clock mapping (slope {sync_map.slope * 1000:.6f} s/s)",
                 fontsize=9)
    ax.legend(fontsize=7)
    ax.tick_params(labelsize=7)


# -- Main entry point ----------------------------------------------------------

def generate_sync_report(triples, sync_map, output_path):
    """Generate a two-panel sync report PNG.

    Parameters
    ----------
    triples : list of SyncTriple
        All triples found in the recording.
    sync_map : SyncMap
        The sync map built from them.
    output_path : str or path-like
        Path for the output PNG file.
    """
    if not HAS_MATPLOTLIB:
        logger.warning(
            "matplotlib not installed, skipping sync report generation. "
            "Install with: pip install matplotlib"
        )
        return

    fig = plt.figure(figsize=(10, 8))
    gs = fig.add_gridspec(
        2, 1,
        top=0.80, bottom=0.08,
        left=0.10, right=0.95,
        hspace=0.45,
    )
    _draw_round_trips(fig.add_subplot(gs[0]), triples, sync_map)
    _draw_mapping(fig.add_subplot(gs[1]), sync_map)
    _draw_text_header(fig, triples, sync_map)

    fig.savefig(str(output_path), dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info("Saved sync report to %s", output_path)
