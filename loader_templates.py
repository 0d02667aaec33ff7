"""
C++ text fragments for the generated delay-load translation unit.

Placeholders use string.Template syntax so the C++ braces stay literal.
"""

from string import Template
from textwrap import dedent

BANNER = Template(dedent("""\
    // Generated delay-load bindings for the '$library' library.
    // This file was automatically generated by delayloadgen. Do not edit.
    """))

COMMON_PRELUDE = dedent("""\
    #include <cstddef>
    #include <cstdio>

    // Lets a declarator name follow array and function-pointer type spellings
    template <typename T>
    using delayload_type_t = T;
    """)

WINDOWS_PRIMITIVES = Template(dedent("""\
    #if defined(_WIN32)
    #ifndef WIN32_LEAN_AND_MEAN
    #define WIN32_LEAN_AND_MEAN
    #endif
    #include <windows.h>

    using delayload_handle_t = HMODULE;

    #define DELAYLOAD_LIBRARY_FILE_NAME L"$windows_file"

    static delayload_handle_t delayload_load_library(const wchar_t *path) noexcept
    {
        return $windows_load_call;
    }

    static void *delayload_get_symbol(delayload_handle_t handle, const char *name) noexcept
    {
        return reinterpret_cast<void *>(::GetProcAddress(handle, name));
    }

    static void delayload_free_library(delayload_handle_t handle) noexcept
    {
        ::FreeLibrary(handle);
    }

    static delayload_handle_t delayload_open_library() noexcept
    {
        return delayload_load_library(DELAYLOAD_LIBRARY_FILE_NAME);
    }
    """))

WINDOWS_LOAD_SYSTEM32 = "::LoadLibraryExW(path, nullptr, LOAD_LIBRARY_SEARCH_SYSTEM32)"
WINDOWS_LOAD_DEFAULT = "::LoadLibraryW(path)"

POSIX_PRIMITIVES = Template(dedent("""\
    #else
    #include <dlfcn.h>

    using delayload_handle_t = void *;

    #if defined(__APPLE__)
    #define DELAYLOAD_LIBRARY_FILE_NAME "$darwin_file"
    #else
    #define DELAYLOAD_LIBRARY_FILE_NAME "$linux_file"
    #endif

    static delayload_handle_t delayload_load_library(const char *path) noexcept
    {
        return ::dlopen(path, RTLD_NOW | RTLD_LOCAL);
    }

    static void *delayload_get_symbol(delayload_handle_t handle, const char *name) noexcept
    {
        return ::dlsym(handle, name);
    }

    static void delayload_free_library(delayload_handle_t handle) noexcept
    {
        ::dlclose(handle);
    }

    $posix_open
    #endif
    """))

POSIX_OPEN_DEFAULT = dedent("""\
    static delayload_handle_t delayload_open_library() noexcept
    {
        return delayload_load_library(DELAYLOAD_LIBRARY_FILE_NAME);
    }
""")

# Only absolute paths below trusted system directories are tried
POSIX_OPEN_SYSTEM_DIRS = dedent("""\
    static delayload_handle_t delayload_open_library() noexcept
    {
    #if defined(__APPLE__)
        static const char *const kSystemDirectories[] = {"/usr/lib"};
    #else
        static const char *const kSystemDirectories[] = {"/usr/lib64", "/lib64", "/usr/lib", "/lib"};
    #endif
        char path[4096];
        for (const char *directory : kSystemDirectories) {
            const int length = std::snprintf(path, sizeof(path), "%s/%s", directory, DELAYLOAD_LIBRARY_FILE_NAME);
            if (length < 0 || static_cast<std::size_t>(length) >= sizeof(path)) {
                continue;
            }
            if (const delayload_handle_t handle = delayload_load_library(path)) {
                return handle;
            }
        }
        return nullptr;
    }
""")

LIBRARY_OBJECT = dedent("""\
    class DelayLoadedLibrary final
    {
    public:
        DelayLoadedLibrary() noexcept : m_handle(delayload_open_library()) {}

        ~DelayLoadedLibrary()
        {
            if (m_handle) {
                delayload_free_library(m_handle);
            }
        }

        DelayLoadedLibrary(const DelayLoadedLibrary &) = delete;
        DelayLoadedLibrary &operator=(const DelayLoadedLibrary &) = delete;

        bool available() const noexcept
        {
            return m_handle != nullptr;
        }

        void *resolve(const char *name) const noexcept
        {
            return m_handle ? delayload_get_symbol(m_handle, name) : nullptr;
        }

    private:
        delayload_handle_t m_handle = nullptr;
    };
    """)

LAZY_ACCESSOR = dedent("""\
    // Opened on first use. A failed open leaves a null handle that is never retried.
    const DelayLoadedLibrary &delayload_library() noexcept
    {
        static const DelayLoadedLibrary library;
        return library;
    }
    """)

EAGER_INITIALIZER = dedent("""\
    void *g_delayload_symbols[DELAYLOAD_SYMBOL_COUNT] = {};

    // Opens the library and resolves every symbol once. A failed open is never retried.
    bool delayload_initialize() noexcept
    {
        static const bool available = []() noexcept {
            static const DelayLoadedLibrary library;
            for (std::size_t index = 0; index != DELAYLOAD_SYMBOL_COUNT; ++index) {
                g_delayload_symbols[index] = library.resolve(kDelayLoadSymbolNames[index]);
            }
            return library.available();
        }();
        return available;
    }
    """)

LAZY_RESOLVE = Template(
    '    static const auto $pointer = reinterpret_cast<$prototype>(delayload_library().resolve("$symbol"));\n'
)

EAGER_RESOLVE = Template(
    "    delayload_initialize();\n"
    "    const auto $pointer = reinterpret_cast<$prototype>(g_delayload_symbols[$index]);\n"
)
