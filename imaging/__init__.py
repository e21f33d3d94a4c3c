from imaging.cache import ImageCache
from imaging.downloader import ImageDownloader
from imaging.normalizer import ImageNormalizer, Perturbation
from imaging.validator import StructuralValidator
from imaging.verifier import SemanticVerifier, Verdict, VerdictStatus
