import os.path


class FileRegistry:
    """
    The FileRegistry creates and tracks absolute paths that correspond to
    model outputs defined in a ModelSpec:

    ``file_registry = FileRegistry(MODEL_SPEC.outputs, workspace_dir, file_suffix)``

    Indexing by an output id returns the absolute path of that output
    within the workspace, with the file suffix inserted before the
    extension. For example ``file_registry['soil_loss']`` returns the
    equivalent of ``os.path.join(workspace_dir, f'soil_loss{suffix}.tif')``.

    Paths that have been accessed are recorded in the ``registry``
    attribute, which maps output ids to absolute paths and is what a model's
    ``execute`` returns.
    """

    def __init__(self, outputs, workspace_dir, file_suffix=None):
        self.registry = {}
        self._keys_to_paths = {}

        for output in outputs:
            path, extension = os.path.splitext(output.path)
            full_path = os.path.abspath(os.path.join(
                workspace_dir, path + (file_suffix or '') + extension))
            if full_path in self._keys_to_paths.values():
                raise ValueError(f'Duplicate path: {full_path}')
            elif output.id in self._keys_to_paths:
                raise ValueError(f'Duplicate id: {output.id}')

            self._keys_to_paths[output.id] = full_path

    def __getitem__(self, key):
        """Return the absolute path of the output ``key`` and record it."""
        if key not in self._keys_to_paths:
            raise KeyError(f'Key not found: {key}')
        path = self._keys_to_paths[key]
        self.registry[key] = path
        return path

    def __contains__(self, key):
        return key in self._keys_to_paths
