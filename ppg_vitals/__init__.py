"""
PPG Vitals: feature extraction and vitals estimation from camera PPG.

Place your finger over the camera lens and torch; the recorder samples the
mean red intensity of each frame at 30 Hz.  Once recording stops the
waveform is filtered, an 18-value morphology / spectral feature vector is
extracted, and heuristic blood pressure and glucose estimates are computed.
The same features feed an external ONNX model whose outputs can be
calibrated against reference measurements.
"""

__version__ = "0.1.0"
__author__ = "ppg_vitals"
