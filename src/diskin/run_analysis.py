"""
Main entry point for the semi-inclusive DIS kinematics analysis.

Reads ASCII Monte Carlo event files, identifies the beam particles in
each event, computes per-particle observables in the virtual-photon
frames and fills histograms of the final-state hadrons
(z, Feynman-x, phi_h, theta and pT with respect to the photon).

Supports serial execution, local multi-process parallelism via
ProcessPoolExecutor, and a local Dask cluster.
"""

import argparse
import glob
import logging
import os
import time
import multiprocessing
from concurrent.futures import ProcessPoolExecutor, as_completed

import yaml
import numpy as np
import matplotlib.pyplot as plt
from hist import Hist
import hist

from diskin.analysis.beams import BeamClassifier, identify_beams
from diskin.analysis.io import DEFAULT_W2_COLUMN, read_events, write_particle_tree
from diskin.distributed.executor import compute_files, create_local_client


# Observables filled per final-state hadron, with their axis labels
OBSERVABLES = {
    "z": r"$z$",
    "x_feynman": r"$x_F$",
    "phi_prf": r"$\phi_h$ [rad]",
    "theta_gamma": r"$\theta_{\gamma^*}$ [rad]",
    "pt_vs_gamma": r"$p_T$ w.r.t. $\gamma^*$ [GeV]",
}

DEFAULT_BINNING = {
    "z": {"nbins": 50, "min": 0.0, "max": 1.0},
    "x_feynman": {"nbins": 50, "min": -1.0, "max": 1.0},
    "phi_prf": {"nbins": 36, "min": 0.0, "max": 2.0 * np.pi},
    "theta_gamma": {"nbins": 36, "min": 0.0, "max": np.pi},
    "pt_vs_gamma": {"nbins": 50, "min": 0.0, "max": 5.0},
}


# Argument parsing and config loading
def parse_args():
    parser = argparse.ArgumentParser(
        description="DIS beam identification and hadron kinematics over Monte Carlo event files."
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--n-workers",
        type=int,
        default=1,
        help="Number of worker processes for parallel file processing.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level for the analysis library (DEBUG, INFO, WARNING, ...).",
    )
    return parser.parse_args()


def load_config(path):
    with open(path) as f:
        return yaml.safe_load(f)


def make_histograms(hist_config=None):
    """
    One empty 1D histogram per observable, binned from the `hist` config
    section with DEFAULT_BINNING filling the gaps.
    """
    hist_config = hist_config or {}
    hists = {}
    for name, label in OBSERVABLES.items():
        binning = {**DEFAULT_BINNING[name], **hist_config.get(name, {})}
        axis = hist.axis.Regular(
            binning["nbins"], binning["min"], binning["max"], name=name, label=label
        )
        hists[name] = Hist(axis)
    return hists


def select_hadrons(event, beams, classifier):
    """
    Final-state hadrons for which the event-dependent quantities are
    available. Photons and leptons in the final state are left out.
    """
    return [
        p
        for p in event
        if p.status in classifier.final_status
        and p is not beams.scattered_lepton
        and classifier.is_hadron(p)
        and p.z is not None
    ]


# Per-file analysis
def process_file(filename, config):
    """
    Per-file DIS analysis.

    Steps:
      1. Read the events of the file.
      2. Identify the beams in each event; skip events where they are
         not all found.
      3. Compute the event-dependent quantities of every particle.
      4. Fill histograms of the final-state hadrons.
      5. Optionally write all particles to a ROOT tree next to the plots.
    """

    # 1) Load events
    reader_cfg = config.get("reader", {})
    events = read_events(filename, w2_column=reader_cfg.get("w2_column", DEFAULT_W2_COLUMN))

    classifier = BeamClassifier.from_config(config.get("beams", {}))
    hists = make_histograms(config.get("hist", {}))
    values = {name: [] for name in OBSERVABLES}

    # 2) + 3) Beams and event-dependent quantities
    n_found = 0
    n_synthetic = 0
    n_hadrons = 0
    for event in events:
        beams = identify_beams(event, classifier)
        if not beams.found:
            continue
        n_found += 1
        if beams.boson_is_synthetic:
            n_synthetic += 1
        event.compute_event_dependent_quantities(beams)

        for particle in select_hadrons(event, beams, classifier):
            n_hadrons += 1
            for name in OBSERVABLES:
                values[name].append(getattr(particle, name))

    # 4) Fill histograms
    for name, h in hists.items():
        if values[name]:
            h.fill(np.asarray(values[name], dtype=float))

    # 5) Per-file ROOT output
    analysis_cfg = config.get("analysis", {})
    if analysis_cfg.get("write_tree", False) and events:
        outdir = config.get("output_dir", ".")
        os.makedirs(outdir, exist_ok=True)
        stem = os.path.splitext(os.path.basename(filename))[0]
        write_particle_tree(os.path.join(outdir, f"{stem}.root"), events)

    info = {
        "filename": filename,
        "n_events": len(events),
        "n_beams_found": n_found,
        "n_synthetic_boson": n_synthetic,
        "n_hadrons": n_hadrons,
    }
    return hists, info


def safe_process_file(fname, config):
    """
    Wrapper so that a bad file doesn't kill the whole job.
    """
    try:
        return process_file(fname, config)
    except Exception as e:
        print(f"[WARN] Error in file {fname}: {e}")
        return None


def merge_histograms(results):
    """Add the per-file histograms bin-by-bin, observable by observable."""
    merged = {}
    for hists, _ in results:
        for name, h in hists.items():
            if not isinstance(h, Hist):
                continue
            if name in merged:
                merged[name] += h
            else:
                merged[name] = h.copy()
    return merged


def plot_histogram(h, path, title):
    counts = h.values()
    edges = h.axes[0].edges
    centers = 0.5 * (edges[:-1] + edges[1:])
    errors = np.sqrt(counts)

    fig, ax = plt.subplots()
    ax.step(edges[:-1], counts, where="post", label="Hadrons")
    ax.errorbar(
        centers,
        counts,
        yerr=errors,
        fmt=".",
        markersize=2,
        linewidth=0.5,
        label="Statistical errors",
    )
    ax.set_xlabel(h.axes[0].label)
    ax.set_ylabel("Hadrons")
    ax.set_title(title)
    ax.legend(loc="best", frameon=False)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)


def run_files(files, config, n_workers, executor="process"):
    """
    Process all files and return the successful (hists, info) results.
    """
    results = []

    if executor == "dask":
        client = create_local_client(n_workers=n_workers)
        try:
            outputs = compute_files(client, files, safe_process_file, config)
        finally:
            client.close()
        for fname, out in zip(files, outputs):
            if out is not None:
                results.append(out)
            print(f"Completed {fname}")
        return results

    # Serial path for N=1: avoids multiprocessing overhead
    if n_workers == 1:
        for i, fname in enumerate(files, start=1):
            out = safe_process_file(fname, config)
            if out is not None:
                results.append(out)
            print(f"[{i}/{len(files)}] Completed {fname}")
        return results

    with ProcessPoolExecutor(max_workers=n_workers) as pool:
        future_to_file = {
            pool.submit(safe_process_file, fname, config): fname
            for fname in files
        }
        for i, future in enumerate(as_completed(future_to_file), start=1):
            fname = future_to_file[future]
            try:
                out = future.result()
            except Exception as e:
                print(f"[ERROR] {fname}: {e}")
                continue
            if out is not None:
                results.append(out)
            print(f"[{i}/{len(files)}] Completed {fname}")
    return results


def main():
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)

    pattern = os.path.join(config["data_dir"], config["file_pattern"])
    files = sorted(glob.glob(pattern))

    if not files:
        raise RuntimeError(f"No input files found for pattern {pattern}")

    print(f"Found {len(files)} input files.")

    analysis_cfg = config.get("analysis", {})
    make_plots = analysis_cfg.get("make_plots", True)

    # Decide how many workers to use
    n_workers = config.get("n_workers", args.n_workers)
    max_procs = multiprocessing.cpu_count() or 1
    if n_workers > max_procs:
        print(
            f"[INFO] Requested {n_workers} workers but only {max_procs} cores available; "
            f"using {max_procs}."
        )
        n_workers = max_procs

    executor = config.get("executor", "process")
    print(f"Using {n_workers} worker(s) with the {executor} executor.")

    start_time = time.perf_counter()
    results = run_files(files, config, n_workers, executor=executor)
    wall_time = time.perf_counter() - start_time

    if not results:
        raise RuntimeError("No successful per-file results; nothing to merge.")

    hists = merge_histograms(results)
    if not hists:
        raise RuntimeError("No histograms were produced!")

    outdir = config["output_dir"]
    os.makedirs(outdir, exist_ok=True)

    for name, h in hists.items():
        np.save(os.path.join(outdir, f"{name}_counts.npy"), h.values())
        np.save(os.path.join(outdir, f"{name}_edges.npy"), h.axes[0].edges)
        if make_plots:
            plot_histogram(h, os.path.join(outdir, f"{name}.png"), f"Hadron {OBSERVABLES[name]}")

    infos = [info for _, info in results]
    total_events = sum(info["n_events"] for info in infos)
    total_found = sum(info["n_beams_found"] for info in infos)
    total_synthetic = sum(info["n_synthetic_boson"] for info in infos)
    total_hadrons = sum(info["n_hadrons"] for info in infos)

    # Final summary
    print(f"Processed {len(results)} files.")
    print(f"Total events read: {total_events}")
    print(f"Events with all beams found: {total_found} ({total_synthetic} with a synthetic boson)")
    print(f"Hadrons filled: {total_hadrons}")
    z_counts = hists["z"].values()
    if z_counts.sum() > 0:
        mean_z = np.sum(hists["z"].axes[0].centers * z_counts) / z_counts.sum()
        print(f"<z> = {mean_z:.3f}")
    print(f"Total wall time: {wall_time:.2f} s")
    if wall_time > 0:
        rate = total_events / wall_time
        print(f"Average processing rate: {rate:.1f} events/s")
    print(f"Saved outputs to {outdir}")


if __name__ == "__main__":
    main()
