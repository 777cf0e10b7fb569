"""Tests for the command-line entry point."""

import json

import numpy as np
from scipy.io import wavfile

import createflow


class TestCreateFlow:

    def test_headless_run(self, capsys):
        code = createflow.main(['--headless', '--frames', '30', '--seed', '3',
                                '--particles', '50', '--resolution', '16'])
        assert code == 0
        out = capsys.readouterr().out
        assert "Ran 30 ticks" in out
        assert "50 particles" in out

    def test_headless_requires_frames(self, capsys):
        assert createflow.main(['--headless', '--particles', '10']) == 2
        assert "--frames" in capsys.readouterr().out

    def test_bad_particle_count(self, capsys):
        assert createflow.main(['--headless', '--frames', '1', '--particles', '0']) == 2

    def test_write_params(self, tmp_path):
        path = tmp_path / "out.json"
        assert createflow.main(['--write-params', str(path), '--algorithm', 'curl',
                                '--resolution', '24']) == 0
        data = json.loads(path.read_text())
        assert data['field']['algorithm'] == 'curl'
        assert data['field']['resolution'] == 24
        assert 'respawn_rate' in data['simulation']

    def test_params_file_is_used(self, tmp_path, capsys):
        path = tmp_path / "params.json"
        path.write_text(json.dumps({'field': {'resolution': 8}, 'simulation': {'respawn_rate': 0.0}}))
        assert createflow.main(['--params', str(path), '--headless', '--frames', '10',
                                '--particles', '20', '--seed', '1']) == 0
        assert "respawns: 0" in capsys.readouterr().out

    def test_missing_params_file(self, tmp_path):
        assert createflow.main(['--params', str(tmp_path / 'nope.json'), '--headless',
                                '--frames', '1']) == 2

    def test_run_headless_returns_stats(self, field, rng):
        from flowtrails.physics.particle_system import ParticleSimulation
        sim = ParticleSimulation(field, 10, rng=rng)
        stats = createflow.run_headless(sim, 5, 0.1)
        assert stats['ticks'] == 5

    def test_headless_with_audio(self, tmp_path, capsys):
        path = tmp_path / "noise.wav"
        rng = np.random.default_rng(0)
        wavfile.write(str(path), 8000, rng.uniform(-0.3, 0.3, 8000).astype(np.float32))
        assert createflow.main(['--headless', '--frames', '20', '--particles', '20',
                                '--seed', '2', '--audio-wav', str(path)]) == 0
        out = capsys.readouterr().out
        assert "audio level:" in out
        assert "audio level: 0.00" not in out

    def test_unreadable_audio(self, tmp_path, capsys):
        path = tmp_path / "not_audio.wav"
        path.write_text("hello")
        assert createflow.main(['--headless', '--frames', '1', '--audio-wav', str(path)]) == 2
        assert "could not read audio" in capsys.readouterr().out
