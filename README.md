# apkotools

Building blocks for working with apk package repositories and the images
assembled from them: reading and writing package indexes, caching downloads,
preparing lock-file entries, formatting package lists and drawing dependency
graphs.

## Modules

### `apkotools.apkindex`

- `Package` is a dataclass for one index entry. It holds the name, version,
  architecture, sizes, dependencies, provides, install-if list, build time and
  checksum. `Package.checksum_string()` returns the checksum in index form,
  that is `Q1` followed by base64.
- `ApkIndex` holds the signature, description and packages of an index
  archive.
- `parse_package_index(source)` parses plain APKINDEX text. It accepts a
  string, bytes or a binary stream. Entries are separated by blank lines.
  Malformed lines and bad numbers raise `ValueError`.
- `index_from_archive(archive)` reads an `APKINDEX.tar.gz` given as bytes, a
  path or a binary stream. It raises `ValueError` on unexpected members.
- `archive_from_index(index)` writes an index back as gzip-compressed tar
  bytes holding `APKINDEX` and `DESCRIPTION`.
- `render_package(package)` returns the text stanza for one package.

### `apkotools.arch`

- `arch_to_apk(name)` maps platform names to apk names, for example
  `amd64` → `x86_64`, `arm64` → `aarch64`, `arm/v7` → `armv7`. Unknown names
  pass through unchanged.

### `apkotools.cache`

- `CacheTransport(root, wrapped=None, cache=None, offline=False, etag_required=False)`
  answers requests from an on-disk cache.
  - `fetch(url, method, headers)` answers a single request.
  - Without `etag_required`, an existing cached file is served. Otherwise the
    request is forwarded to `wrapped`, which by default is a
    `requests.Session`.
  - With `etag_required`, a HEAD request finds the ETag. The body is then
    stored under a name derived from that ETag.
  - `fetch_offline(cache_file)` serves the most recently modified cached
    entry.
- `Cache(etag=True)` is shared between transports. It remembers HEAD
  responses, and `Cache.load` and `Cache.store` read and write them. It also
  coalesces concurrent requests for the same file.
- `CachedResponse` carries the status, headers and body, either held in memory
  or as a file path. Its `read()` method returns the body.
- The path helpers are `cache_path_from_url`, `cache_dir_from_file`,
  `cache_file_from_etag` and `etag_from_headers`. `etag_from_headers`
  base32-encodes the ETag so that it is safe as a file name.

### `apkotools.lock`

- `remove_label(value)` strips leading `@label` prefixes from a repository
  line. It raises `ValueError` for empty input or a label with no URL after
  it.
- `strip_url_scheme(url)` removes a leading `https://` or `http://`.
- `lock_ranges(signature_size, control_size, data_size)` returns the HTTP byte
  ranges `(signature, control, data)` of a package. The signature range is
  `None` when the signature size is zero.

### `apkotools.show_packages`

- `FORMATS` holds named templates: `name-version`, `name-version-source`,
  `name=version`, `name=version-source`, `name-(version)`,
  `name-(version)-source`, `packagelock` and `packagelock-source`.
  `DEFAULT_FORMAT` is `name-version`.
- `resolve_format(name)` returns the named template, or treats the argument
  itself as a template.
- Templates support `{{ .Name }}`, `{{ .Version }}` and `{{ .Source }}`,
  including the `{{-` / `-}}` whitespace trimming markers. Any other action
  raises `ValueError`.
- `format_package(template, name, version, source)` renders one line.
- `format_packages(template, lists)` yields one line per package. `lists` maps
  an architecture to `(name, version, source)` tuples.

### `apkotools.publish`

- `parse_annotations(raw_annotations)` turns `key:value` strings into a
  dictionary. A missing colon, a repeated key, a key outside `[a-z0-9-.]` or
  an empty value raises `ValueError`.
- `PublishOptions` has `local` and `tags`. The option functions `with_local`
  and `with_tags` set these fields, and `apply_publish_options` applies them
  in order.

### `apkotools.build`

- `select_architectures(archs, config_archs, all_archs)` decides what to
  build. Explicit architectures come first, then those from the
  configuration, then all of them.
- `rename(source, destination)` moves a file. When the move crosses devices it
  copies the file and deletes the original instead.

### `apkotools.dot`

- `DotGraph` is a Graphviz graph with named nodes. It has `add_node`,
  `add_edge` and `edge_pairs`, and `to_string` renders DOT text.
- `render_graph(config_file, requested, packages, args, web, span, resolve_error)`
  draws each requested package, the dependencies and the provides.
  - `span` limits each target to one incoming edge.
  - `web` adds `URL` attributes built by `link(args, package_name)`.
  - A resolution error is drawn as a tree under a `❌ error` node by
    `walk_errors`.
- `pkgver(package)` returns `name-version`.

## Example

```python
from apkotools.apkindex import index_from_archive
from apkotools.show_packages import resolve_format, format_package

with open("APKINDEX.tar.gz", "rb") as archive:
    index = index_from_archive(archive)

template = resolve_format("packagelock")
for pkg in index.packages:
    print(format_package(template, pkg.name, pkg.version, pkg.url))
```

## What it does not do

This is a library only.

- It has no command-line program.
- It does not resolve dependencies, install packages or build image layers.
- It does not verify index signatures. The signature bytes are read but not
  checked.
- It does not push images or SBOMs to a registry.
- It does not serve dependency graphs in a browser. `render_graph` returns DOT
  text for an external Graphviz tool to render.

## Installing and testing

```
pip install .
pip install ".[test]"
pytest
```