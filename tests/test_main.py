import argparse

import pytest

import main


def test_parse_param_decodes_json_values():
    assert main._parse_param('genres=["jazz", "ambient"]') == ("genres", ["jazz", "ambient"])
    assert main._parse_param('total_songs=100') == ("total_songs", 100)
    assert main._parse_param('name=Rainy Day') == ("name", "Rainy Day")


def test_parse_param_requires_equals_sign():
    with pytest.raises(argparse.ArgumentTypeError):
        main._parse_param('name')


def test_run_subcommand_collects_parameters():
    args = main.build_parser().parse_args(['run', 'genre_fusion', '-p', 'name=Fusion', '-p', 'genres=["jazz"]'])
    assert args.kind == 'genre_fusion'
    assert dict(args.param) == {"name": "Fusion", "genres": ["jazz"]}


def test_unknown_task_kind_exits_with_usage_code():
    assert main.run_task('not_a_task', {}) == 2


def test_invalid_parameters_exit_before_any_call():
    assert main.run_task('genre_fusion', {"name": "Fusion", "genres": []}) == 2

