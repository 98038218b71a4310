# fieldcam/constants/analysis.py

# Fixed Analysis Constants
# Threshold And Default Grid Resolution Used Across Encoding And Metrics

# Cells Strictly Above This Heatmap Value Count As "Affected"
AFFECTED_THRESHOLD: float = 0.5

# Pixels Per Grid Square When A Scan Record Carries No Cell Size
DEFAULT_CELL_SIZE: int = 20

# Label Template When No Class Names Are Configured
DEFAULT_LABEL_FMT: str = "Class {index}"
