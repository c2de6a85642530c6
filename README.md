# execbox

`execbox` runs programs inside an execution environment under limits on time,
memory, processes and output, and collects what they produce. It is the core
of an online-judge style executor:

- `execbox.model` describes a command (`Cmd`), its limits (`Limit`), the
  environment interface (`Environment`, `Process`) and the outcome (`Result`,
  `FileError`, `FileErrorType`).
- `execbox.files` holds the kinds of file a command can use: `FileReader`,
  `FileInput`, `FileCollector`, `FileWriter` and `FileOpened`.
- `execbox.pipes` and `execbox.prepare` open the descriptors a command gets,
  including pipes between commands (`Pipe`, `PipeIndex`), optionally proxied
  so that the first bytes are collected under a name.
- `execbox.transfer` copies files into an environment before a run
  (`copy_in`) and collects copy-out files and outputs after it
  (`copy_out_and_collect`).
- `execbox.runner` runs one command (`Single`) or several commands connected
  by pipes (`Group`).
- `execbox.waiter` provides `Waiter`, which checks CPU and wall-clock time
  every tick and reports when a limit is exceeded.
- `execbox.filestore` keeps produced files: `LocalFileStore` on disk, and
  `TimeoutFileStore` which drops files that have not been used for a while.
- `execbox.worker` queues `Request`s from `execbox.request` and runs them with
  a fixed parallelism, taking environments from an `EnvironmentPool`
  (`execbox.pool`).
- `execbox.status` gives the result statuses (`Status`) such as
  `Accepted`, `Time Limit Exceeded` and `Memory Limit Exceeded`, and
  `convert_status` to map a `RunnerStatus` onto them.

Helpers for building environments are also included: mount configuration
read from YAML with default container mounts (`execbox.mounts`), sandbox
profile text (`execbox.profile`), and command line and environment block
formatting (`execbox.wincmd`).

## Installing

```
pip install .
```

## Using it

An environment is anything that implements `Environment` from
`execbox.model`: it starts a process with `execve`, returns its work
directory path from `work_dir`, and opens files relative to it with `open`.
To pool environments, implement `PooledEnvironment` and an `EnvBuilder` from
`execbox.pool`, and give the builder to `EnvironmentPool`. Hand the pool and
a file store to a `Worker`:

```python
from execbox.filestore import LocalFileStore
from execbox.pool import EnvironmentPool
from execbox.worker import Worker, WorkerConfig
from execbox.request import Request, WorkerCmd
from execbox.cmdfile import MemoryFile, Collector

store = LocalFileStore("/var/tmp/execbox-files")  # the directory must exist
pool = EnvironmentPool(my_builder)

worker = Worker(WorkerConfig(file_store=store, environment_pool=pool, parallelism=4))
worker.start()

request = Request(
    request_id="demo",
    cmd=[
        WorkerCmd(
            args=["/usr/bin/cat"],
            files=[
                MemoryFile(b"hello\n"),
                Collector("stdout", 10240),
                Collector("stderr", 10240),
            ],
            cpu_limit=1.0,
            memory_limit=64 << 20,
        )
    ],
)
response = worker.execute(request).result()
print(response.results[0])
worker.shutdown()
```

`Worker.submit` queues a request instead and returns a future for the
response together with an event that is set when the request starts; when
the queue is full the response carries an error at once.

Output named in `copy_out_cached` is moved into the file store and reported
by id in `WorkerResult.file_ids`; other outputs are returned as open files in
`WorkerResult.files`. Times are in seconds and sizes in bytes throughout.

## What it does not do

The package does not contain an environment that actually isolates a
program: there is no container, cgroup or operating-system sandbox
implementation, and no builder that assembles one from settings. You supply
the `Environment` (and, for pooling, the `EnvBuilder`). There is also no
command-line program and no network server; the package is used as a
library.

## Running the tests

```
pip install ".[test]"
pytest
```