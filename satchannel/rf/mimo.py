from math import log2

from satchannel.rf.models import MimoCapacity, from_db

# Above this SNR log2(1 + snr) equals log2(snr) to double precision
HIGH_SNR_DB = 100.0
BITS_PER_DB = log2(10.0) / 10.0


def compute_mimo_capacity(snr_db: float, xpd_db: float) -> MimoCapacity:
    """Single-stream and dual-polarization capacity in bps/Hz.

    Rank 2 splits the power across two polarizations and treats the cross-polar
    leakage (``10^(-XPD/10)``) as interference on each stream. This is an
    approximation, not the eigenvalue capacity of a full 2x2 channel matrix.
    """
    snr = from_db(snr_db)
    crosstalk = from_db(-xpd_db)

    if snr_db > HIGH_SNR_DB:
        rank1 = snr_db * BITS_PER_DB
    else:
        rank1 = log2(1.0 + snr)

    half = snr / 2.0
    sinr = half / (1.0 + half * crosstalk)
    rank2 = 2.0 * log2(1.0 + sinr)

    return MimoCapacity(rank1_bps_hz=rank1, rank2_bps_hz=rank2)
