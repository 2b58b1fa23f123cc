from vulntree.__version__ import __version__
from vulntree.analysis import DependencyAnalyzer, analyze_package
from vulntree.core.model import AnalysisReport

__all__ = ["__version__", "AnalysisReport", "DependencyAnalyzer", "analyze_package"]
