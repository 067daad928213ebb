from cutline.render.asset_fetcher import AssetFetcher
from cutline.render.encoder import Encoder, FFmpegEncoder
from cutline.render.graph_compiler import compile_timeline
from cutline.render.pipeline import ExportOrchestrator

__all__ = [
    "ExportOrchestrator",
    "AssetFetcher",
    "Encoder",
    "FFmpegEncoder",
    "compile_timeline",
]
