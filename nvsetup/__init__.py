"""nvsetup — provision or tear down a GPU developer host.

Installs the NVIDIA driver, the CUDA toolkit, Docker CE and the
NVIDIA Container Toolkit as a fixed, logged, fail-fast pipeline.
"""

__version__ = "0.1.0"
