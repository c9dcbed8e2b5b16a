import io
import json
import os
import tempfile
import unittest
from unittest import mock

import ngconv
from estree_builders import call, func, ident, lit, member, module_chain, obj, program, prop, registration, stmt


def spec_program():
    return program(stmt(call(ident("describe"), lit("suite"), func())))


def component_program():
    config = obj(prop("bindings", obj(prop("x", lit("<")))), prop("controller", func()))
    return program(stmt(registration("component", "fooComponent", config)))


class LoadEstreeJsonTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def write_json(self, name: str, document) -> str:
        path = os.path.join(self._tmp.name, name)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(document, handle)
        return path

    def test_bare_program(self) -> None:
        path = self.write_json("foo.js.json", spec_program())
        filename, root = ngconv.load_estree_json(path)
        self.assertEqual(filename, os.path.join(self._tmp.name, "foo.js"))
        self.assertIsInstance(root, ngconv.Program)

    def test_envelope(self) -> None:
        path = self.write_json("dump.json", {"filename": "src/foo.spec.js", "ast": spec_program()})
        filename, root = ngconv.load_estree_json(path)
        self.assertEqual(filename, "src/foo.spec.js")
        self.assertEqual(len(root.body), 1)

    def test_unusable_inputs(self) -> None:
        not_json = os.path.join(self._tmp.name, "broken.json")
        with open(not_json, "w", encoding="utf-8") as handle:
            handle.write("{not json")
        expression = self.write_json("expr.json", ident("x"))
        with mock.patch("sys.stderr", new_callable=io.StringIO) as stderr:
            self.assertIsNone(ngconv.load_estree_json(os.path.join(self._tmp.name, "missing.json")))
            self.assertIsNone(ngconv.load_estree_json(not_json))
            self.assertIsNone(ngconv.load_estree_json(expression))
        output = stderr.getvalue()
        self.assertIn("Input file not found", output)
        self.assertIn("is not valid JSON", output)
        self.assertIn("does not hold an ESTree Program", output)


class MainTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.spec_path = os.path.join(self._tmp.name, "foo.js.json")
        self.component_path = os.path.join(self._tmp.name, "foo.component.js.json")
        with open(self.spec_path, "w", encoding="utf-8") as handle:
            json.dump(spec_program(), handle)
        with open(self.component_path, "w", encoding="utf-8") as handle:
            json.dump(component_program(), handle)
        self.out_path = os.path.join(self._tmp.name, "out.json")

    def read_out(self):
        with open(self.out_path, "r", encoding="utf-8") as handle:
            return json.load(handle)

    def test_analyze_writes_violations(self) -> None:
        code = ngconv.main(["analyze", "--out", self.out_path, self.spec_path, self.component_path])
        self.assertEqual(code, 1)
        results = self.read_out()
        self.assertEqual(
            [item["rule_id"] for item in results],
            ["consistent-test-filename", "require-comp-ctrl-on-init"],
        )
        self.assertTrue(results[0]["message"].endswith('foo.spec.js"'))
        self.assertEqual(results[0]["tool"], "ngconv")
        self.assertEqual(results[0]["version"], ngconv.__version__)

    def test_warnings_do_not_fail(self) -> None:
        config_path = os.path.join(self._tmp.name, "ngconv.yaml")
        with open(config_path, "w", encoding="utf-8") as handle:
            handle.write("rules:\n  consistent-test-filename: warn\n  require-comp-ctrl-on-init: warn\n")
        code = ngconv.main(
            ["analyze", "--config", config_path, "--out", self.out_path, self.spec_path, self.component_path]
        )
        self.assertEqual(code, 0)
        self.assertEqual({item["severity"] for item in self.read_out()}, {"warning"})

    def test_analyze_to_stdout(self) -> None:
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            code = ngconv.main(["analyze", self.component_path])
        self.assertEqual(code, 1)
        results = json.loads(stdout.getvalue())
        self.assertEqual(results[0]["location"]["file"], self.component_path[: -len(".json")])

    def test_deeply_nested_file_does_not_stop_later_files(self) -> None:
        chain = module_chain()
        for index in range(300):
            chain = call(member(chain, f"step{index}"), func())
        deep = program(stmt(call(member(chain, "component"), lit("deep"), obj(prop("controller", func())))))
        deep_path = os.path.join(self._tmp.name, "deep.component.js.json")
        with open(deep_path, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(deep))
        bindings = obj(prop("y", lit("=")))
        good = program(stmt(registration("component", "good", obj(prop("bindings", bindings)))))
        good_path = os.path.join(self._tmp.name, "good.component.js.json")
        with open(good_path, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(good))

        code = ngconv.main(["analyze", "--out", self.out_path, deep_path, good_path])

        self.assertEqual(code, 1)
        results = [(item["rule_id"], os.path.basename(item["location"]["file"])) for item in self.read_out()]
        self.assertIn(("require-comp-ctrl-on-init", "deep.component.js"), results)
        self.assertIn(("no-two-way-binding", "good.component.js"), results)

    def test_rules_listing(self) -> None:
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            code = ngconv.main(["rules"])
        self.assertEqual(code, 0)
        listing = json.loads(stdout.getvalue())
        self.assertEqual([item["id"] for item in listing], list(ngconv.RULES))
        self.assertEqual(listing[0]["schema"][0]["properties"], {"suffix": {"type": "string"}})
        self.assertIsNone(listing[1]["fixable"])


class ViolationJsonTests(unittest.TestCase):
    def test_field_order(self) -> None:
        violation = ngconv.Violation(
            rule_id="no-two-way-binding",
            severity="error",
            message="Use one way binding and callback functions",
            location={"file": "a.js", "line_start": 1, "col_start": 1, "line_end": 1, "col_end": 2},
        )
        as_json = ngconv.violation_to_json_obj(violation)
        self.assertEqual(
            list(as_json),
            ["rule_id", "severity", "message", "location", "context", "suggested_fix", "extras", "tool", "version"],
        )


if __name__ == "__main__":
    unittest.main()
