"""Plot IV curves of a hard-sphere simple-cubic toy crystal."""

import numpy as np
import matplotlib.pyplot as plt

from leedpy.core import compute_iv_curves
from leedpy.modeling import CalcConfig
from leedpy.models import SquareCrystalParams, hard_sphere_phase_table, phase_set, square_crystal


crystal = square_crystal(SquareCrystalParams(a=4.7, spacing=3.3, n_overlayers=1, top_spacing=3.1))
table = hard_sphere_phase_table(radius=1.2, l_max=5, energies=np.linspace(0.5, 12.0, 60))
phases = [phase_set(table, u=0.1)]
config = CalcConfig(l_max=5, epsilon=1e-3, vr=-10.0, vi=4.0, theta=0.0, phi=0.0)

result = compute_iv_curves(crystal, phases, np.arange(40.0, 201.0, 2.0), config)

for ind1, ind2 in result.emerging_beams()[:4]:
    curve = result.curve(ind1, ind2)
    plt.plot(curve.energies, curve.intensities, label=curve.label)
plt.xlabel("Energy (eV)")
plt.ylabel("Intensity")
plt.title("Hard-sphere simple-cubic toy crystal")
plt.legend()
plt.grid(alpha=0.3)
plt.tight_layout()
plt.show()
