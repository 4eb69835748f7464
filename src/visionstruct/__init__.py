"""VisionStruct: an MCP server that turns images into structured JSON descriptions."""

from visionstruct.gateway import AnalysisFailure, AnalysisResult, AnalysisSuccess, InferenceGateway
from visionstruct.server.app import create_app
from visionstruct.settings import Settings

__all__ = [
    "AnalysisFailure",
    "AnalysisResult",
    "AnalysisSuccess",
    "InferenceGateway",
    "Settings",
    "create_app",
]
