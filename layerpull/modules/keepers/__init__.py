from .downloaders import RegistryClient
from .extractor import LAYER_FILENAME, ExtractResult, LayerExtractor
from .layerpull import ClientFactory, pull_layer
