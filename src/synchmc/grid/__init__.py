from .snapshot import FlashGrid, make_uniform_shell_grid
