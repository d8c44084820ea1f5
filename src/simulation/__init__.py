"""
Simulation module: synthetic Student-t regression data.

Used for calibration runs (does the fitted HDI cover the truth?) and for
exercising the pipeline without external data.

**Usage:**
```python
from simulation import SyntheticRegression

gen = SyntheticRegression(intercept=2.0, slopes=[1.5, -0.7], sigma=1.0, nu=5.0)
table = gen.generate(n_obs=100, random_seed=3)
truth = gen.true_parameters  # {"alpha": 2.0, "beta[0]": 1.5, "beta[1]": -0.7}
```
"""

from simulation.synthetic import SyntheticRegression

__all__ = [
    "SyntheticRegression",
]
