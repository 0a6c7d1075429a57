import pytest
pytest.importorskip("vector")
from diskin.analysis import beams
from diskin.analysis.beams import BeamClassifier, identify_beam_particles, identify_beams
from diskin.analysis.particle import Event, Particle


def test_identifies_all_four_roles(dis_event):
    summary = identify_beams(dis_event)

    assert summary.found
    assert summary.incident_lepton is dis_event.get_track(0)
    assert summary.incident_hadron is dis_event.get_track(1)
    assert summary.boson is dis_event.get_track(2)
    assert summary.scattered_lepton is dis_event.get_track(3)
    assert not summary.boson_is_synthetic


def test_list_form_has_fixed_order(dis_event):
    found, particles = identify_beam_particles(dis_event)

    assert found is True
    assert particles == [dis_event.get_track(i) for i in (0, 1, 2, 3)]


def test_hadron_only_event_is_not_found():
    event = Event(
        [
            Particle(1, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0, 100.0),
            Particle(2, 1, 211, 1, 0, 0, 0.1, 0.0, 10.0, 10.0),
            Particle(3, 1, 2112, 1, 0, 0, 0.0, 0.1, 80.0, 80.0),
        ]
    )

    found, particles = identify_beam_particles(event)

    assert found is False
    assert particles[0] is None
    assert particles[3] is None
    assert particles[1] is event.get_track(0)
    assert not identify_beams(event).found


def test_synthetic_boson_from_leptons(dis_event_no_boson):
    summary = identify_beams(dis_event_no_boson)

    assert summary.found
    assert summary.boson_is_synthetic
    # Not an entry of the particle list
    assert all(summary.boson is not p for p in dis_event_no_boson)
    assert summary.boson.event is None

    q = summary.incident_lepton.get_4vector() - summary.scattered_lepton.get_4vector()
    got = summary.boson.get_4vector()
    assert (got.px, got.py, got.pz, got.E) == pytest.approx((q.px, q.py, q.pz, q.E))
    # Spacelike, so negative signed mass
    assert summary.boson.m < 0.0


def test_first_incident_lepton_wins(dis_event):
    duplicate = Particle(6, 21, 11, 0, 0, 0, 0.0, 0.0, -20.0, 20.0)
    dis_event.add_particle(duplicate)

    assert identify_beams(dis_event).incident_lepton is dis_event.get_track(0)


def test_scattered_lepton_prefers_lineage_over_energy():
    event = Event(
        [
            Particle(1, 21, 11, 0, 0, 0, 0.0, 0.0, -10.0, 10.0),
            Particle(2, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0, 100.0),
            # Energetic electron from a decay, not from the beam
            Particle(3, 1, 11, 2, 0, 0, 0.0, 1.0, 30.0, 30.02),
            Particle(4, 1, 11, 1, 0, 0, 2.0, 0.0, -8.0, 8.25),
        ]
    )

    assert identify_beams(event).scattered_lepton is event.get_track(3)

    by_energy = BeamClassifier(scattered_lepton_policy="energy")
    assert identify_beams(event, by_energy).scattered_lepton is event.get_track(2)


def test_scattered_lepton_traced_through_intermediate_entry():
    event = Event(
        [
            Particle(1, 21, 11, 0, 0, 0, 0.0, 0.0, -10.0, 10.0),
            Particle(2, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0, 100.0),
            Particle(3, 21, 22, 1, 0, 0, -2.0, 0.0, -2.0, 1.75),
            # Documentation copy of the outgoing electron
            Particle(4, 21, 11, 1, 0, 0, 2.0, 0.0, -8.0, 8.25),
            Particle(5, 1, 11, 2, 0, 0, 0.0, 1.0, 30.0, 30.02),
            Particle(6, 1, 11, 4, 0, 0, 2.0, 0.0, -8.0, 8.25),
        ]
    )

    summary = identify_beams(event)

    assert summary.found
    assert summary.scattered_lepton is event.get_track(5)


def test_scattered_lepton_falls_back_to_highest_energy():
    event = Event(
        [
            Particle(1, 21, 11, 0, 0, 0, 0.0, 0.0, -10.0, 10.0),
            Particle(2, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0, 100.0),
            Particle(3, 1, 11, 0, 0, 0, 0.0, 1.0, -3.0, 3.2),
            Particle(4, 1, 11, 0, 0, 0, 2.0, 0.0, -8.0, 8.25),
        ]
    )

    assert identify_beams(event).scattered_lepton is event.get_track(3)


def test_scattered_hadron_is_never_identified(dis_event):
    summary = identify_beams(dis_event)
    assert not hasattr(summary, "scattered_hadron")
    assert len(summary.as_list()) == 4


def test_skip_uses_absolute_pdg_code():
    classifier = BeamClassifier()
    assert classifier.skip(Particle(pdg=-3))
    assert classifier.skip(Particle(pdg=2))
    assert not classifier.skip(Particle(pdg=11))
    assert not classifier.skip(Particle(pdg=-11))


def test_skipped_codes_are_ignored_when_scanning():
    event = Event(
        [
            # A quark carrying a beam status must not be taken as anything
            Particle(1, 21, 2, 0, 0, 0, 0.0, 0.0, 50.0, 50.0),
            Particle(2, 21, 11, 0, 0, 0, 0.0, 0.0, -10.0, 10.0),
        ]
    )
    classifier = BeamClassifier(lepton_pdg=2)
    assert identify_beams(event, classifier).incident_lepton is None


@pytest.mark.parametrize(
    "pdg, expected",
    [
        (211, True),
        (-321, True),
        (111, True),
        (2212, True),
        (-3122, True),
        (22, False),
        (11, False),
        (-13, False),
        (92, False),           # string
        (2203, False),         # uu diquark
        (1000060120, False),   # carbon-12 nucleus
    ],
)
def test_is_hadron(pdg, expected):
    assert BeamClassifier().is_hadron(Particle(pdg=pdg)) is expected


def test_lepton_pdg_is_not_a_hadron_code():
    classifier = BeamClassifier(lepton_pdg=2212)
    assert 2212 not in classifier.hadron_pdgs


def test_classifier_from_config():
    classifier = BeamClassifier.from_config(
        {"lepton_pdg": -11, "final_status": [1, 91], "scattered_lepton_policy": "energy"}
    )
    assert classifier.lepton_pdg == -11
    assert classifier.final_status == {1, 91}
    assert classifier.hadron_pdgs == set(beams.DEFAULT_HADRON_PDGS)
    assert classifier.scattered_lepton_policy == "energy"

    default = BeamClassifier.from_config(None)
    assert default.lepton_pdg == beams.DEFAULT_LEPTON_PDG


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        BeamClassifier(scattered_lepton_policy="closest")


def test_custom_classifier_is_injected():
    class MuonBeams(BeamClassifier):
        def is_incident_lepton(self, particle):
            return abs(particle.pdg) == 13 and particle.status == 21

    event = Event(
        [
            Particle(1, 21, -13, 0, 0, 0, 0.0, 0.0, -10.0, 10.0),
            Particle(2, 21, 2212, 0, 0, 0, 0.0, 0.0, 100.0, 100.0),
        ]
    )

    summary = identify_beams(event, MuonBeams(lepton_pdg=-13))
    assert summary.incident_lepton is event.get_track(0)
    assert summary.incident_hadron is event.get_track(1)
