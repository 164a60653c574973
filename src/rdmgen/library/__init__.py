from . import index
from . import rdm
from . import active
from . import compare_utils
