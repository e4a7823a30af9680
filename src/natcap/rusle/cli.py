# coding=UTF-8
"""Single entry point for the RUSLE models."""
import argparse
import collections
import importlib
import json
import logging
import multiprocessing
import os
import pprint
import sys

from natcap.rusle import __version__
from natcap.rusle import spec

DEFAULT_EXIT_CODE = 1
LOGGER = logging.getLogger(__name__)
_MODELMETA = collections.namedtuple('ModelMeta', 'humanname pyname aliases')

_MODELS = {
    'soil_loss': _MODELMETA(
        humanname='RUSLE Soil Loss',
        pyname='natcap.rusle.soil_loss',
        aliases=('rusle',)),
}

# Build up an index mapping aliases to model names.
_MODEL_ALIASES = {}
for _model_name, _meta in _MODELS.items():
    for _alias in _meta.aliases:
        assert _alias not in _MODEL_ALIASES, (
            'Alias %s already defined for model %s') % (
                _alias, _MODEL_ALIASES[_alias])
        _MODEL_ALIASES[_alias] = _model_name


def build_model_list_table():
    """Build a table of model names, aliases and other details.

    Returns:
        A string representation of the formatted table.
    """
    max_model_name_length = max(len(name) for name in _MODELS)
    template_string = '    {modelname} {aliases} {humanname}'
    strings = ['Available models:']
    for model_name in sorted(_MODELS):
        alias_string = ', '.join(_MODELS[model_name].aliases)
        if alias_string:
            alias_string = '(%s)' % alias_string
        strings.append(template_string.format(
            modelname=model_name.ljust(max_model_name_length),
            aliases=alias_string.ljust(12),
            humanname=_MODELS[model_name].humanname))
    return '\n'.join(strings) + '\n'


def build_model_list_json():
    """Build a json object of relevant information for the CLI."""
    json_object = {}
    for model_name, model_data in _MODELS.items():
        json_object[model_data.humanname] = {
            'model_name': model_name,
            'aliases': model_data.aliases,
        }
    return json.dumps(json_object)


class SelectModelAction(argparse.Action):
    """Given a possibly-ambiguous model string, identify the model to run.

    Identifiable model names are the model name verbatim, a uniquely
    identifying prefix of a model name, or a known alias. If no single model
    can be identified, an error message is printed and the parser exits with
    a nonzero exit code.
    """
    def __call__(self, parser, namespace, values, option_string=None):
        known_models = sorted(_MODELS)

        matching_models = [model for model in known_models if
                           model.startswith(values)]
        exact_matches = [model for model in known_models if
                         model == values]

        if len(exact_matches) == 1:  # match an exact modelname
            modelname = exact_matches[0]
        elif values in _MODEL_ALIASES:  # match an alias
            modelname = _MODEL_ALIASES[values]
        elif len(matching_models) == 1:  # match an identifying substring
            modelname = matching_models[0]
        elif len(matching_models) == 0:
            parser.exit(status=1, message=(
                "Error: '%s' not a known model" % values))
        else:
            parser.exit(
                status=1,
                message=(
                    "Model string '{model}' is ambiguous:\n"
                    "    {matching_models}").format(
                        model=values,
                        matching_models=' '.join(matching_models)))
        setattr(namespace, self.dest, modelname)


def load_datastack(datastack_path):
    """Read a JSON datastack of a model id and its args.

    The file holds ``{"model_id": ..., "args": {...}}``. Relative paths of
    file and directory inputs are taken relative to the datastack file.

    Returns:
        tuple of ``(model_id, args)``.

    Raises:
        ValueError if the datastack names no known model or has no args.
    """
    with open(datastack_path) as datastack_file:
        datastack = json.load(datastack_file)

    model_id = datastack.get('model_id')
    if model_id in _MODEL_ALIASES:
        model_id = _MODEL_ALIASES[model_id]
    if model_id not in _MODELS:
        raise ValueError(
            f'Datastack {datastack_path} names an unknown model: {model_id}')
    if not isinstance(datastack.get('args'), dict):
        raise ValueError(f'Datastack {datastack_path} has no args object')

    model_module = importlib.import_module(_MODELS[model_id].pyname)
    base_dir = os.path.dirname(os.path.abspath(datastack_path))
    args = dict(datastack['args'])
    for input_spec in model_module.MODEL_SPEC.inputs:
        value = args.get(input_spec.id)
        if (isinstance(input_spec, (spec.FileInput, spec.DirectoryInput))
                and isinstance(value, str) and value
                and not os.path.isabs(value)):
            args[input_spec.id] = os.path.abspath(
                os.path.join(base_dir, value))
    return model_id, args


def main(user_args=None):
    """CLI entry point for running and validating RUSLE models headless."""
    parser = argparse.ArgumentParser(
        description=(
            'Revised Universal Soil Loss Equation. Estimates annual soil '
            'loss from rainfall, soil, terrain, land cover and practice '
            'factors and summarizes it by administrative region.'),
        prog='rusle'
    )
    parser.add_argument('--version', action='version',
                        version=__version__)
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        '-v', '--verbose', dest='verbosity', default=0, action='count',
        help=('Increase verbosity.  Affects how much logging is printed to '
              'the console and how much is written to the logfile.'))
    verbosity_group.add_argument(
        '--debug', dest='log_level', default=logging.CRITICAL,
        action='store_const', const=logging.DEBUG,
        help='Enable debug logging. Alias for -vvvvv')

    subparsers = parser.add_subparsers(dest='subcommand')

    listmodels_subparser = subparsers.add_parser(
        'list', help='List the available models')
    listmodels_subparser.add_argument(
        '--json', action='store_true', help='Write output as a JSON object')

    run_subparser = subparsers.add_parser(
        'run', help='Run a model')
    run_subparser.add_argument(
        '-d', '--datastack', required=True,
        help='Run the specified model with this JSON datastack.')
    run_subparser.add_argument(
        '-w', '--workspace', default=None, nargs='?',
        help=('The workspace in which outputs will be saved. Overrides '
              'the workspace of the datastack.'))
    run_subparser.add_argument(
        'model', action=SelectModelAction,  # Assert valid model name
        help=('The model to run.  Use "rusle list" to list the available '
              'models.'))

    validate_subparser = subparsers.add_parser(
        'validate', help=(
            'Validate the parameters of a datastack'))
    validate_subparser.add_argument(
        '--json', action='store_true', help='Write output as a JSON object')
    validate_subparser.add_argument(
        'datastack', help=('Validate the model args of this JSON datastack.'))

    getspec_subparser = subparsers.add_parser(
        'getspec', help=('Get the specification of a model.'))
    getspec_subparser.add_argument(
        '--json', action='store_true', help='Write output as a JSON object')
    getspec_subparser.add_argument(
        'model', action=SelectModelAction,  # Assert valid model name
        help=('The model for which the spec should be fetched.  Use "rusle '
              'list" to list the available models.'))

    args = parser.parse_args(user_args)

    root_logger = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-18s %(levelname)-8s %(message)s',
        datefmt='%m/%d/%Y %H:%M:%S ')
    handler.setFormatter(formatter)

    # Verbosity: the more v's the lower the logging threshold.
    # If --debug is used, the logging threshold is 10.
    log_level = min(args.log_level, logging.CRITICAL - (args.verbosity*10))
    handler.setLevel(max(log_level, logging.DEBUG))  # don't go lower than DEBUG
    root_logger.addHandler(handler)
    LOGGER.info('Setting handler log level to %s', log_level)
    logging.getLogger('natcap').setLevel(logging.DEBUG)

    try:
        if args.subcommand == 'list':
            if args.json:
                message = build_model_list_json()
            else:
                message = build_model_list_table()
            sys.stdout.write(message)
            return 0

        if args.subcommand == 'validate':
            try:
                model_id, model_args = load_datastack(args.datastack)
            except Exception as error:
                parser.exit(
                    1, "Error when parsing JSON datastack file:\n    " +
                    str(error))

            model_module = importlib.import_module(_MODELS[model_id].pyname)
            try:
                validation_result = model_module.validate(model_args)
            except Exception as error:
                parser.exit(
                    1, ('Datastack could not be validated:\n    ' +
                        str(error)))

            # Even validation errors will have an exit code of 0
            if args.json:
                message = json.dumps({
                    'validation_results': validation_result})
            else:
                message = pprint.pformat(validation_result)
            sys.stdout.write(message)
            return 0

        if args.subcommand == 'getspec':
            model_module = importlib.import_module(_MODELS[args.model].pyname)
            if args.json:
                message = model_module.MODEL_SPEC.to_json()
            else:
                message = pprint.pformat(
                    json.loads(model_module.MODEL_SPEC.to_json()))
            sys.stdout.write(message)
            return 0

        if args.subcommand == 'run':
            try:
                model_id, model_args = load_datastack(args.datastack)
            except Exception as error:
                parser.exit(
                    1, "Error when parsing JSON datastack file:\n    " +
                    str(error))
            if model_id != args.model:
                parser.exit(
                    1, f'Datastack is for model {model_id}, not {args.model}')

            if args.workspace:
                model_args['workspace_dir'] = os.path.abspath(args.workspace)
            elif model_args.get('workspace_dir') in ('', None):
                parser.exit(
                    1, ('Workspace must be defined at the command line '
                        'or in the datastack file'))

            model_module = importlib.import_module(_MODELS[model_id].pyname)
            LOGGER.info('Imported target %s from %s',
                        model_module.__name__, model_module)

            # We're deliberately not validating here because the user
            # can just call ``rusle validate <datastack>`` to validate.
            model_module.MODEL_SPEC.execute(
                model_args, create_logfile=True, log_level=log_level)
            return 0

        parser.print_help()
        return DEFAULT_EXIT_CODE
    finally:
        root_logger.removeHandler(handler)


if __name__ == '__main__':
    multiprocessing.freeze_support()
    sys.exit(main())
