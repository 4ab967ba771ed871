"""Global constants for chordtab."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
FLAT_NAMES = {"Db": "C#", "Eb": "D#", "Gb": "F#", "Ab": "G#", "Bb": "A#", "Cb": "B", "Fb": "E"}
SHARP_ALIASES = {"E#": "F", "B#": "C"}
NATURAL_PITCH_CLASSES = (0, 2, 4, 5, 7, 9, 11)

# Tuning
REFERENCE_A4 = 440.0
A4_MIDI = 69

# Musical defaults
DEFAULT_TEMPO = 120
MIN_TEMPO = 55
MAX_TEMPO = 220
BEATS_PER_BAR = 4
MAX_SLOTS_PER_BAR = 4

# Nominal frame duration used to size chord windows (hop 1024 at 44.1 kHz)
NOMINAL_FRAME_SECONDS = 0.023

# Silence gate for averaged RMS over a window or beat
SILENCE_RMS = 0.002

# Major/minor scale intervals
MAJOR_SCALE = (0, 2, 4, 5, 7, 9, 11)
MINOR_SCALE = (0, 2, 3, 5, 7, 8, 10)
