import sys
import numpy as np
import pytest
pytest.importorskip("awkward")
pytest.importorskip("hist")
pytest.importorskip("vector")
pytest.importorskip("dask")
from hist import Hist
from diskin import run_analysis


def _config(tmp_path, **analysis):
    return {
        "output_dir": str(tmp_path / "out"),
        "reader": {"w2_column": 13},
        "beams": {"lepton_pdg": 11},
        "hist": {"z": {"nbins": 10, "min": 0.0, "max": 1.0}},
        "analysis": {"make_plots": False, "write_tree": False, **analysis},
    }


def test_parse_args_defaults(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prog"])
    args = run_analysis.parse_args()
    assert args.config == "config/config.yaml"
    assert args.n_workers == 1
    assert args.log_level == "WARNING"


def test_parse_args_custom(monkeypatch):
    monkeypatch.setattr(
        sys,
        "argv",
        ["prog", "--config", "mycfg.yaml", "--n-workers", "4", "--log-level", "debug"],
    )
    args = run_analysis.parse_args()
    assert args.config == "mycfg.yaml"
    assert args.n_workers == 4
    assert args.log_level == "debug"


def test_make_histograms_uses_config_and_defaults():
    hists = run_analysis.make_histograms({"z": {"nbins": 10}})

    assert set(hists) == set(run_analysis.OBSERVABLES)
    assert all(isinstance(h, Hist) for h in hists.values())
    assert len(hists["z"].axes[0].edges) == 11
    assert hists["phi_prf"].axes[0].edges[-1] == pytest.approx(2.0 * np.pi)


def test_process_file_fills_hadron_histograms(dis_event_file, tmp_path):
    hists, info = run_analysis.process_file(str(dis_event_file), _config(tmp_path))

    assert info["n_events"] == 2
    assert info["n_beams_found"] == 2
    assert info["n_synthetic_boson"] == 0
    # One pion per event; the scattered electron is not a hadron
    assert info["n_hadrons"] == 2
    assert np.isclose(np.sum(hists["z"].values(flow=True)), 2.0)
    assert np.isclose(np.sum(hists["phi_prf"].values(flow=True)), 2.0)


def test_process_file_writes_tree(dis_event_file, tmp_path):
    pytest.importorskip("uproot")
    config = _config(tmp_path, write_tree=True)

    run_analysis.process_file(str(dis_event_file), config)

    assert (tmp_path / "out" / "dis_events.root").exists()


def test_process_file_skips_events_without_beams(dis_event_file, tmp_path):
    config = _config(tmp_path)
    config["beams"] = {"lepton_pdg": 13}

    hists, info = run_analysis.process_file(str(dis_event_file), config)

    assert info["n_beams_found"] == 0
    assert info["n_hadrons"] == 0
    assert np.sum(hists["z"].values(flow=True)) == 0


def test_safe_process_file_reports_bad_files(tmp_path, capsys):
    bad = tmp_path / "bad.txt"
    bad.write_text(" 0 1 1 99\n 1 21 11 0\n =============== Event finished ===============\n")

    assert run_analysis.safe_process_file(str(bad), _config(tmp_path)) is None
    assert "[WARN]" in capsys.readouterr().out


def test_merge_histograms_adds_per_file_results(dis_event_file, tmp_path):
    out = run_analysis.process_file(str(dis_event_file), _config(tmp_path))

    merged = run_analysis.merge_histograms([out, out])

    assert np.isclose(np.sum(merged["z"].values(flow=True)), 4.0)
    # Inputs are left untouched
    assert np.isclose(np.sum(out[0]["z"].values(flow=True)), 2.0)


def test_run_files_serial(dis_event_file, tmp_path):
    results = run_analysis.run_files([str(dis_event_file)], _config(tmp_path), n_workers=1)
    assert len(results) == 1
    assert results[0][1]["n_events"] == 2


def test_select_hadrons_leaves_out_photons_and_leptons():
    from conftest import dis_particles
    from diskin.analysis.beams import BeamClassifier, identify_beams
    from diskin.analysis.particle import Event, Particle

    particles = dis_particles(with_boson=True)
    # Decay photon of the pion and an electron from the proton remnant
    particles.append(Particle(6, 1, 22, 5, 0, 0, 0.3, 0.1, 4.0, float(np.sqrt(16.1))))
    particles.append(
        Particle(7, 1, 11, 2, 0, 0, 0.2, -0.1, 3.0, float(np.sqrt(9.05 + 0.000511**2)), 0.000511)
    )
    event = Event(particles, number=1)
    classifier = BeamClassifier()
    beams = identify_beams(event, classifier)
    assert beams.scattered_lepton is event.get_track(3)
    event.compute_event_dependent_quantities(beams)

    selected = run_analysis.select_hadrons(event, beams, classifier)

    assert [p.pdg for p in selected] == [211]
