"""
Tests for forward and inverse transforms.
"""

import math
import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest
import torch

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import torchsht
from torchsht import cache, core
from torchsht.errors import AllocationError, ArgumentInvalidError, PreconditionError
from torchsht.sampling import elm2ind, phi_samples, sample_shape, theta_samples
from torchsht.wigner import basis_nbytes, spin_basis

METHODS = ["DH", "MW", "GL"]
SPINS = [-2, -1, 0, 1, 2]


def _random_flm(L, spin=0, seed=0):
    rng = np.random.default_rng(seed)
    flm = rng.normal(size=L * L) + 1j * rng.normal(size=L * L)
    flm[: spin * spin] = 0.0
    return torch.from_numpy(flm)


def _random_real_flm(L, seed=0):
    rng = np.random.default_rng(seed)
    flm = np.zeros(L * L, dtype=np.complex128)
    for el in range(L):
        flm[elm2ind(el, 0)] = rng.normal()
        for m in range(1, el + 1):
            value = rng.normal() + 1j * rng.normal()
            flm[elm2ind(el, m)] = value
            flm[elm2ind(el, -m)] = (-1) ** m * np.conj(value)
    return torch.from_numpy(flm)


def _direct_synthesis(flm, L, spin, method):
    """sum_elm f_elm Lambda_el^{m,s}(theta_t) exp(i m phi_p), evaluated without FFTs."""
    theta = theta_samples(method, L)
    phi = phi_samples(method, L)
    basis = spin_basis(L, spin, theta).to(torch.complex128)
    f = torch.zeros(sample_shape(method, L), dtype=torch.complex128)
    for el in range(L):
        for m in range(-el, el + 1):
            ring = basis[m + L - 1, el].unsqueeze(1)
            f += flm[elm2ind(el, m)] * ring * torch.exp(1j * m * phi).unsqueeze(0)
    return f


@pytest.fixture(autouse=True)
def _default_cache():
    cache.configure_cache(enabled=False, max_bytes=cache._DEFAULT_MAX_BYTES)
    yield
    cache.configure_cache(enabled=False, max_bytes=cache._DEFAULT_MAX_BYTES)


class TestRoundTrip:
    """forward(inverse(flm)) reproduces flm for band-limited signals."""

    @pytest.mark.parametrize("method", METHODS)
    @pytest.mark.parametrize("spin", SPINS)
    def test_complex(self, method, spin):
        """Test the complex round trip for every scheme and spin."""
        L = 8
        flm = _random_flm(L, spin, seed=abs(spin))
        if method == "MW":
            f, f_sp = torchsht.inverse(flm, L, spin, method=method)
            got = torchsht.forward(f, L, spin, method=method, f_sp=f_sp)
        else:
            f = torchsht.inverse(flm, L, spin, method=method)
            got = torchsht.forward(f, L, spin, method=method)
        assert f.shape == sample_shape(method, L)
        torch.testing.assert_close(got, flm, rtol=0, atol=1e-10)

    @pytest.mark.parametrize("method", METHODS)
    def test_larger_band_limit(self, method):
        """Test the round trip through the transform driver at L=16."""
        L = 16
        flm = _random_flm(L, 2, seed=11)
        out = torchsht.transform(flm, L, direction="inverse", method=method, spin=2)
        f, f_sp = out
        got = torchsht.transform(f, L, direction="forward", method=method, spin=2, f_sp=f_sp)
        torch.testing.assert_close(got, flm, rtol=0, atol=1e-9)

    @pytest.mark.parametrize("method", ["DH", "MW"])
    @pytest.mark.parametrize("spin", [-2, 2])
    def test_band_limit_64(self, method, spin):
        """Test the round trip at L=64 for spin 2 and -2."""
        L = 64
        flm = _random_flm(L, spin, seed=64 + spin)
        f, f_sp = torchsht.transform(flm, L, direction="inverse", method=method, spin=spin)
        got = torchsht.transform(f, L, direction="forward", method=method, spin=spin, f_sp=f_sp)
        torch.testing.assert_close(got, flm, rtol=0, atol=1e-10)

    @pytest.mark.parametrize("block", [1, 3, 100])
    def test_block_size_does_not_change_result(self, monkeypatch, block):
        """Test that the colatitude block size only changes round-off."""
        L = 9
        flm = _random_flm(L, 1, seed=13)
        f, f_sp = torchsht.mw_inverse(flm, L, 1)
        got = torchsht.mw_forward(f, L, 1, f_sp=f_sp)

        monkeypatch.setattr(core, "_THETA_BLOCK", block)
        f_block, f_sp_block = torchsht.mw_inverse(flm, L, 1)
        torch.testing.assert_close(f_block, f, rtol=0, atol=1e-13)
        assert abs(complex(f_sp_block) - complex(f_sp)) < 1e-13
        torch.testing.assert_close(torchsht.mw_forward(f, L, 1, f_sp=f_sp), got, rtol=0, atol=1e-13)

    @pytest.mark.parametrize("spin", [0, 1, -2])
    def test_mw_pole_azimuth(self, spin):
        """Test the MW round trip with a non-zero pole azimuth."""
        L = 6
        phi_sp = 0.7
        flm = _random_flm(L, spin, seed=3)
        f, f_sp = torchsht.mw_inverse(flm, L, spin, phi_sp=phi_sp)
        got = torchsht.mw_forward(f, L, spin, f_sp=f_sp, phi_sp=phi_sp)
        torch.testing.assert_close(got, flm, rtol=0, atol=1e-10)

    @pytest.mark.parametrize("method", METHODS)
    @pytest.mark.parametrize("spin", [0, 2])
    def test_inverse_matches_direct_sum(self, method, spin):
        """Test the inverse against a direct sum over the basis."""
        L = 5
        flm = _random_flm(L, spin, seed=7)
        out = torchsht.inverse(flm, L, spin, method=method)
        f = out[0] if method == "MW" else out
        torch.testing.assert_close(f, _direct_synthesis(flm, L, spin, method), rtol=0, atol=1e-11)

    def test_mw_south_pole_value(self):
        """Test the MW south pole value against the basis at theta = pi."""
        L = 5
        flm = _random_flm(L, 1, seed=5)
        _, f_sp = torchsht.mw_inverse(flm, L, 1, phi_sp=0.3)
        # pole value summed directly from the basis at theta = pi
        basis = spin_basis(L, 1, torch.tensor([math.pi], dtype=torch.float64))
        expected = 0j
        for el in range(L):
            for m in range(-el, el + 1):
                expected += complex(flm[elm2ind(el, m)]) * float(basis[m + L - 1, el, 0]) * complex(
                    math.cos(m * 0.3), math.sin(m * 0.3)
                )
        assert abs(complex(f_sp) - expected) < 1e-10


class TestRealTransforms:
    """Real fast paths agree with the complex transforms."""

    @pytest.mark.parametrize("method", METHODS)
    def test_round_trip(self, method):
        """Test the real round trip for every scheme."""
        L = 8
        flm = _random_real_flm(L, seed=2)
        if method == "MW":
            f, f_sp = torchsht.inverse_real(flm, L, method=method)
            got = torchsht.forward_real(f, L, method=method, f_sp=float(f_sp))
        else:
            f = torchsht.inverse_real(flm, L, method=method)
            got = torchsht.forward_real(f, L, method=method)
        assert f.dtype == torch.float64
        torch.testing.assert_close(got, flm, rtol=0, atol=1e-10)

    @pytest.mark.parametrize("method", METHODS)
    def test_matches_complex_path(self, method):
        """Test that real transforms agree with the complex path."""
        L = 7
        flm = _random_real_flm(L, seed=4)
        real_out = torchsht.transform(flm, L, direction="inverse", method=method, reality=True)
        cplx_out = torchsht.transform(flm, L, direction="inverse", method=method)
        torch.testing.assert_close(real_out[0].to(torch.complex128), cplx_out[0], rtol=0, atol=1e-11)
        assert abs(complex(real_out[1]) - complex(cplx_out[1])) < 1e-11

        real_flm = torchsht.transform(
            real_out[0], L, direction="forward", method=method, reality=True, f_sp=real_out[1].item()
        )
        cplx_flm = torchsht.transform(
            cplx_out[0], L, direction="forward", method=method, f_sp=cplx_out[1].item()
        )
        torch.testing.assert_close(real_flm, cplx_flm, rtol=0, atol=1e-10)

    def test_complex_samples_rejected(self):
        """Test that real transforms refuse complex samples."""
        f = torch.zeros(sample_shape("DH", 4), dtype=torch.complex128)
        with pytest.raises(ArgumentInvalidError):
            torchsht.dh_forward_real(f, 4)


class TestKnownSignals:
    """Transforms of signals with known coefficients."""

    def test_mw_constant(self):
        """Test that a constant MW map has only the monopole."""
        L = 4
        f = torch.ones(sample_shape("MW", L), dtype=torch.complex128)
        flm = torchsht.mw_forward(f, L, 0, f_sp=1.0)
        expected = torch.zeros(L * L, dtype=torch.complex128)
        expected[0] = math.sqrt(4.0 * math.pi)
        torch.testing.assert_close(flm, expected, rtol=0, atol=1e-12)

    @pytest.mark.parametrize("method", METHODS)
    def test_constant_real(self, method):
        """Test the monopole of a constant real map."""
        L = 4
        f = torch.full(sample_shape(method, L), 2.0, dtype=torch.float64)
        flm = torchsht.forward_real(f, L, method=method, f_sp=2.0)
        assert abs(complex(flm[0]) - 2.0 * math.sqrt(4.0 * math.pi)) < 1e-12
        assert float(flm[1:].abs().max()) < 1e-12

    def test_degrees_below_spin_vanish(self):
        """Test that degrees below |spin| come out zero."""
        L = 6
        flm = _random_flm(L, 2, seed=9)
        f = torchsht.dh_inverse(flm, L, 2)
        got = torchsht.dh_forward(f, L, 2)
        assert torch.all(got[:4] == 0)


class TestValidation:
    """Argument and size checks."""

    def test_reality_with_spin_fails_before_allocation(self, monkeypatch):
        """Test that spin with reality is rejected before tables are built."""
        def fail(*args, **kwargs):
            raise AssertionError("tables built before argument validation")

        monkeypatch.setattr(core, "_build_tables", fail)
        f = torch.zeros(sample_shape("MW", 4), dtype=torch.float64)
        with pytest.raises(ArgumentInvalidError, match="Reality flag may only be set for spin 0 signals"):
            torchsht.transform(f, 4, direction="forward", method="MW", spin=2, reality=True)

    def test_invalid_method_and_direction(self):
        """Test rejection of unknown methods and directions."""
        with pytest.raises(ArgumentInvalidError):
            torchsht.transform(torch.zeros(16), 4, direction="inverse", method="XX")
        with pytest.raises(ArgumentInvalidError):
            torchsht.transform(torch.zeros(16), 4, direction="sideways")

    def test_non_integer_spin(self):
        """Test rejection of a fractional spin."""
        with pytest.raises(ArgumentInvalidError):
            torchsht.dh_inverse(torch.zeros(16), 4, spin=0.5)

    @pytest.mark.parametrize("method", METHODS)
    def test_wrong_sample_shape(self, method):
        """Test rejection of sample arrays of the wrong shape."""
        rows, cols = sample_shape(method, 4)
        with pytest.raises(PreconditionError):
            torchsht.forward(torch.zeros(rows + 1, cols), 4, method=method)

    def test_wrong_coefficient_length(self):
        """Test rejection of coefficient arrays of the wrong length."""
        with pytest.raises(PreconditionError):
            torchsht.inverse(torch.zeros(15, dtype=torch.complex128), 4, method="DH")
        with pytest.raises(PreconditionError):
            torchsht.inverse(torch.zeros((4, 4), dtype=torch.complex128), 4, method="GL")

    def test_band_limits(self):
        """Test the smallest band-limit each scheme accepts."""
        with pytest.raises(PreconditionError):
            torchsht.mw_inverse(torch.zeros(1), 1)
        with pytest.raises(PreconditionError):
            torchsht.dh_inverse(torch.zeros(0), 0)
        # L = 1 is valid on DH
        f = torchsht.dh_inverse(torch.ones(1, dtype=torch.complex128), 1)
        torch.testing.assert_close(f, torch.full((2, 1), 0.5 / math.sqrt(math.pi), dtype=torch.complex128))

    def test_allocation_failure(self, monkeypatch):
        """Test AllocationError when no memory is available."""
        monkeypatch.setattr(cache.psutil, "virtual_memory", lambda: SimpleNamespace(available=0))
        with pytest.raises(AllocationError, match="Memory allocation failed in spin_basis"):
            torchsht.gl_inverse(torch.zeros(16, dtype=torch.complex128), 4)

    def test_basis_never_held_for_whole_grid(self, monkeypatch):
        """Test transforms that fit in memory only one colatitude block at a time."""
        L = 64
        available = 2 * 1024**2
        assert basis_nbytes(2 * L - 1, L, 2 * L) > available
        monkeypatch.setattr(cache.psutil, "virtual_memory", lambda: SimpleNamespace(available=available))

        flm = _random_flm(L, 2, seed=21)
        f = torchsht.dh_inverse(flm, L, 2)
        torch.testing.assert_close(torchsht.dh_forward(f, L, 2), flm, rtol=0, atol=1e-10)
        f, f_sp = torchsht.mw_inverse(flm, L, 2)
        torch.testing.assert_close(torchsht.mw_forward(f, L, 2, f_sp=f_sp), flm, rtol=0, atol=1e-10)

    def test_inputs_not_mutated(self):
        """Test that inputs are not modified in place."""
        L = 4
        flm = _random_flm(L, seed=1)
        before = flm.clone()
        torchsht.mw_inverse(flm, L)
        assert torch.equal(flm, before)


class TestTableCache:
    """Optional table cache gives identical results."""

    def test_cached_results_identical(self):
        """Test that cached and uncached results are identical."""
        L = 6
        flm = _random_flm(L, 1, seed=8)
        uncached = torchsht.mw_inverse(flm, L, 1)

        cache.configure_cache(enabled=True)
        first = torchsht.mw_inverse(flm, L, 1)
        second = torchsht.mw_inverse(flm, L, 1)
        stats = torchsht.get_cache_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 1
        assert stats["entries"] == 1
        for a, b, c in zip(uncached, first, second):
            assert torch.equal(a, b)
            assert torch.equal(b, c)

    def test_disabled_cache_stores_nothing(self):
        """Test that a disabled cache keeps no entries."""
        torchsht.dh_inverse(_random_flm(4), 4)
        assert torchsht.get_cache_stats()["entries"] == 0

    def test_entries_over_budget_not_stored(self):
        """Test that tables larger than the budget are not stored."""
        cache.configure_cache(enabled=True, max_bytes=1)
        torchsht.dh_inverse(_random_flm(4), 4)
        stats = torchsht.get_cache_stats()
        assert stats["entries"] == 0
        assert stats["misses"] == 1

    def test_lru_eviction(self):
        """Test least-recently-used eviction under a tight budget."""
        cache.configure_cache(enabled=True)
        torchsht.dh_inverse(_random_flm(4), 4)
        size = torchsht.get_cache_stats()["bytes"]
        cache.configure_cache(max_bytes=size + 1)
        torchsht.dh_inverse(_random_flm(4), 4, 0)
        torchsht.dh_inverse(_random_flm(4), 4, 0)
        torchsht.gl_inverse(_random_flm(4), 4, 0)
        stats = torchsht.get_cache_stats()
        assert stats["entries"] == 1
        assert stats["evictions"] == 1

    def test_clear_cache(self):
        """Test that clear_cache drops entries and statistics."""
        cache.configure_cache(enabled=True)
        torchsht.dh_inverse(_random_flm(4), 4)
        torchsht.clear_cache()
        stats = torchsht.get_cache_stats()
        assert stats["entries"] == 0 and stats["bytes"] == 0 and stats["misses"] == 0

    def test_environment_configuration(self, monkeypatch):
        """Test cache configuration from environment variables."""
        monkeypatch.setenv("TORCHSHT_CACHE", "1")
        monkeypatch.setenv("TORCHSHT_CACHE_MAX_BYTES", "4096")
        config = cache.CacheConfig.from_environment()
        assert config.enabled is True
        assert config.max_bytes == 4096

        monkeypatch.delenv("TORCHSHT_CACHE")
        assert cache.CacheConfig.from_environment().enabled is False
