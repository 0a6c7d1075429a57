"""
I/O utilities for DIS Monte Carlo event files.

Reads the eic-smear style ASCII event layout into Event objects, and
writes per-particle quantities out as Awkward Arrays or a ROOT TTree
with uproot.

Input layout:

    <free-text preamble lines>
    ============================================
    <event header: whitespace-separated numbers, W^2 in column `w2_column`>
    ============================================
    <particle record, 14 fields>
    ...
    =============== Event finished ===============

A line is data if its first token is an integer. The first data line of
each event is its header; the rest are particle records.
"""

import logging

import awkward as ak
import numpy as np
import uproot

from diskin.analysis.particle import (
    Event,
    EventFormatError,
    Particle,
    ParticleFormatError,
    RECORD_FIELDS,
)

logger = logging.getLogger(__name__)


# trueW2 column of the PYTHIA 6 event header
DEFAULT_W2_COLUMN = 13

EVENT_END_MARKER = "finished"

DERIVED_FIELDS = ("pt", "p", "theta", "phi", "rapidity", "eta")
EVENT_DEPENDENT_FIELDS = ("z", "x_feynman", "theta_gamma", "pt_vs_gamma", "phi_prf", "parent_pdg")


def _is_data_line(tokens):
    if not tokens:
        return False
    try:
        int(tokens[0])
    except ValueError:
        return False
    return True


def _parse_header(tokens, w2_column, where):
    number = None
    w2 = None
    if len(tokens) > 1:
        try:
            number = int(tokens[1])
        except ValueError:
            number = None
    if w2_column is not None and len(tokens) > w2_column:
        try:
            w2 = float(tokens[w2_column])
        except ValueError as e:
            raise EventFormatError(f"{where}: bad W2 value {tokens[w2_column]!r}") from e
    return number, w2


def iter_events(filename, w2_column=DEFAULT_W2_COLUMN):
    """
    Yield Event objects from an ASCII event file.

    Parameters
    ----------
    filename : str or path-like
    w2_column : int or None
        Column of the event header holding W^2. None means W^2 is not read
        and is later derived from the beams.

    Raises
    ------
    EventFormatError
        If a particle record is malformed; the message carries file and line.
    """
    header = None
    particles = []

    with open(filename) as f:
        for lineno, line in enumerate(f, start=1):
            if EVENT_END_MARKER in line.lower():
                if header is not None:
                    number, w2 = header
                    yield Event(particles, w2=w2, number=number)
                header = None
                particles = []
                continue

            tokens = line.split()
            if not _is_data_line(tokens):
                continue

            where = f"{filename}:{lineno}"
            if header is None:
                header = _parse_header(tokens, w2_column, where)
                continue
            try:
                particles.append(Particle.from_line(line))
            except ParticleFormatError as e:
                raise EventFormatError(f"{where}: {e}") from e

    if header is not None:
        logger.warning(
            "Dropping unterminated event %s at end of %s", header[0], filename
        )


def read_events(filename, w2_column=DEFAULT_W2_COLUMN):
    """Read all events of a file into a list."""
    return list(iter_events(filename, w2_column=w2_column))


def _particle_record(particle):
    record = {name: getattr(particle, name) for name in RECORD_FIELDS}
    for name in DERIVED_FIELDS:
        record[name] = getattr(particle, name)
    for name in EVENT_DEPENDENT_FIELDS:
        value = getattr(particle, name)
        record[name] = np.nan if value is None else value
    return record


def events_to_awkward(events):
    """
    Convert events into an Awkward Array of records.

    One record per event with fields `number`, `w2` and `particles`, the
    latter a jagged list of per-particle records holding the raw record
    fields plus all derived quantities. Unset event-dependent quantities
    become NaN.
    """
    return ak.Array(
        [
            {
                "number": -1 if event.number is None else event.number,
                "w2": np.nan if event.w2 is None else event.w2,
                "particles": [_particle_record(p) for p in event],
            }
            for event in events
        ]
    )


def write_particle_tree(filename, events, treename="events"):
    """
    Write events to a ROOT file as a TTree using uproot.

    Event-level branches `number` and `w2`, and one `particle_<field>`
    branch per particle quantity with the counter `nparticle`. If no event
    has any particle, only the event-level branches are written.
    """
    arrays = events_to_awkward(events)
    if len(arrays) == 0:
        raise ValueError(f"No events to write to {filename}")

    branches = {"number": arrays["number"], "w2": arrays["w2"]}
    particles = arrays["particles"]
    if particles.fields:
        branches["particle"] = ak.zip({name: particles[name] for name in particles.fields})
    else:
        logger.warning("No particles in any event; writing event-level branches only to %s", filename)

    with uproot.recreate(filename) as f:
        f[treename] = branches
