"""GL error types shared by the renderer and the GL program helpers.

Kept free of OpenGL imports so code that only needs to catch these errors can
load without a GL driver.
"""


class RendererInitError(RuntimeError):
    """A GL object (program, buffer, texture) could not be created.

    The renderer treats this as fatal: the owning view stays blank and reports
    the message instead of retrying every frame.
    """
