"""
Prediction module: two-phase fit/predict pipeline and forward prediction.

**Usage:**
```python
from inference import NUTSSampler
from prediction import RegressionPipeline
from preprocessing import ObservationTable

pipeline = RegressionPipeline(NUTSSampler(random_seed=7), iterations=1000, warmup=1000)
artifacts, report = pipeline.fit(ObservationTable.from_frame(frame, outcome="y"))

analysis = pipeline.analyze(artifacts)          # diagnostics + PPC + HDIs
prediction = pipeline.predict(artifacts, {"x1": 0.4, "x2": -1.0})
print(prediction.mean, prediction.hdi(0.9))
```

Every predict() call re-samples the full model with the new row held out.
"""

from prediction.pipeline import AnalysisReport, ModelArtifacts, RegressionPipeline
from prediction.predictor import ForwardPredictor, PredictiveDistribution

__all__ = [
    "RegressionPipeline",
    "ModelArtifacts",
    "AnalysisReport",
    "ForwardPredictor",
    "PredictiveDistribution",
]
