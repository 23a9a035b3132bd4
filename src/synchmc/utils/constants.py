"""
Physical constants for synchrotron emission, in CGS units.
This file centralizes all physical constants to avoid duplication across the codebase.
"""

# Fundamental constants
SPEED_OF_LIGHT_C = 2.99792458e10  # Speed of light in cm/s
PLANCK_CONSTANT = 6.62607015e-27  # Planck constant in erg*s
BOLTZMANN_CONSTANT = 1.380649e-16  # Boltzmann constant in erg/K
FINE_STRUCTURE_CONSTANT = 1.0 / 137.035999084  # Fine structure constant

# Electron properties
ELECTRON_CHARGE = 4.80320471e-10  # Elementary charge in esu
ELECTRON_MASS = 9.1093837015e-28  # Electron rest mass in g
ELECTRON_RADIUS = 2.8179403262e-13  # Classical electron radius in cm
THOMSON_CROSS_SECTION = 6.6524587321e-25  # Thomson cross section in cm^2

# Other particles
PROTON_MASS = 1.67262192369e-24  # Proton mass in g

# Mathematical constants
PI = 3.141592653589793
