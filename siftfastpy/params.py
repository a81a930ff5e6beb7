from __future__ import annotations

from dataclasses import dataclass

from ._bindings import SiftParametersSt
from .coercion import to_float32, to_int


@dataclass
class SiftParameters:
    """Tunables of the detection engine.

    The values are forwarded untouched; their effect is up to the engine.
    """

    double_image_size: int = 1  # upsample the input 2x before building the pyramid
    scales: int = 3  # scales per octave
    init_sigma: float = 1.6
    peak_thresh: float = 0.04

    def __post_init__(self) -> None:
        self.double_image_size = to_int(self.double_image_size)
        self.scales = to_int(self.scales)
        self.init_sigma = float(to_float32(self.init_sigma))
        self.peak_thresh = float(to_float32(self.peak_thresh))

    def _to_ctypes(self) -> SiftParametersSt:
        return SiftParametersSt(
            DoubleImSize=self.double_image_size,
            Scales=self.scales,
            InitSigma=self.init_sigma,
            PeakThresh=self.peak_thresh,
        )

    @classmethod
    def _from_ctypes(cls, st: SiftParametersSt) -> "SiftParameters":
        return cls(
            double_image_size=st.DoubleImSize,
            scales=st.Scales,
            init_sigma=st.InitSigma,
            peak_thresh=st.PeakThresh,
        )

    # legacy CamelCase attribute names
    DoubleImSize = property(
        lambda self: self.double_image_size,
        lambda self, v: setattr(self, "double_image_size", to_int(v)),
    )
    Scales = property(
        lambda self: self.scales,
        lambda self, v: setattr(self, "scales", to_int(v)),
    )
    InitSigma = property(
        lambda self: self.init_sigma,
        lambda self, v: setattr(self, "init_sigma", float(to_float32(v))),
    )
    PeakThresh = property(
        lambda self: self.peak_thresh,
        lambda self, v: setattr(self, "peak_thresh", float(to_float32(v))),
    )
