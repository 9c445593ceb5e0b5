"""otp-runner: download inputs, build and serve OpenTripPlanner graphs.

Automates one run of an OpenTripPlanner deployment from a manifest.json:
  - Downloads the OTP jar and graph inputs (GTFS, OSM, configs) over HTTP(S) or S3
  - Builds a graph with a supervised ``java -jar otp.jar --build`` process
  - Starts an OTP server and waits for its readiness log markers
  - Uploads the graph, the build report and all logs to S3
  - Reports weighted progress to a status.json file after every event
"""

__version__ = "1.0.0"
__description__ = (
    "Scripts to assemble GTFS and OSM remote data inputs and run OpenTripPlanner"
)

from otprunner.core.orchestrator import Orchestrator, RunFailed
from otprunner.cli.app import app as cli

__all__ = ["Orchestrator", "RunFailed", "cli", "__version__"]
